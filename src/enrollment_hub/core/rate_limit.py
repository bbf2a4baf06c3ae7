"""
Rate Limiting Module

Sliding-window request throttling, keyed per student for enrollment
operations. Uses the shared Redis client when available and falls back to
in-memory storage otherwise.
"""

import logging
import time

from fastapi import HTTPException, status
from redis.asyncio import Redis
from redis.exceptions import RedisError

from enrollment_hub.core.config import settings
from enrollment_hub.core.redis import get_redis

logger = logging.getLogger(__name__)

# In-memory rate limit storage (fallback when Redis unavailable)
# Format: {key: [timestamp, ...]}
_memory_store: dict[str, list[float]] = {}


class RateLimitExceeded(HTTPException):
    """Exception raised when rate limit is exceeded."""

    def __init__(self, limit: int, window_seconds: int):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "RATE_LIMIT_EXCEEDED",
                "message": f"Rate limit exceeded. Maximum {limit} requests per {window_seconds} seconds.",
                "retry_after_seconds": window_seconds,
            },
            headers={"Retry-After": str(window_seconds)},
        )


async def _check_rate_limit_redis(
    client: Redis,
    key: str,
    limit: int,
    window_seconds: int,
) -> bool:
    """
    Check rate limit using a Redis sorted set as a sliding window.

    Returns:
        True if request is allowed, False if rate limit exceeded
    """
    now = time.time()

    pipe = client.pipeline()
    pipe.zremrangebyscore(key, 0, now - window_seconds)
    pipe.zcard(key)
    pipe.zadd(key, {str(now): now})
    pipe.expire(key, window_seconds)
    results = await pipe.execute()

    return results[1] < limit


def _check_rate_limit_memory(key: str, limit: int, window_seconds: int) -> bool:
    """
    Check rate limit using in-memory storage.

    Note: This doesn't work across multiple server instances.
    """
    now = time.time()
    window_start = now - window_seconds

    recent = [ts for ts in _memory_store.get(key, []) if ts > window_start]
    if len(recent) >= limit:
        _memory_store[key] = recent
        return False

    recent.append(now)
    _memory_store[key] = recent
    return True


async def check_rate_limit(key: str, limit: int, window_seconds: int) -> bool:
    """
    Check if a request is within rate limits.

    Tries Redis first, falls back to in-memory storage.

    Returns:
        True if request is allowed, False if rate limit exceeded
    """
    client = get_redis()
    if client is not None:
        try:
            return await _check_rate_limit_redis(client, key, limit, window_seconds)
        except RedisError as e:
            logger.warning(f"Redis rate limit check failed, using memory: {e}")

    return _check_rate_limit_memory(key, limit, window_seconds)


async def enforce_student_rate_limit(student_id: str) -> None:
    """
    Throttle enrollment operations per student.

    Raises:
        RateLimitExceeded: When the student exceeded ENROLLMENT_RATE_LIMIT
            requests within ENROLLMENT_RATE_WINDOW_SECONDS
    """
    limit = settings.enrollment_rate_limit
    window = settings.enrollment_rate_window_seconds
    key = f"rate_limit:enrollment:{student_id}"

    if not await check_rate_limit(key, limit, window):
        logger.warning(f"Rate limit exceeded for student {student_id}: {limit}/{window}s")
        raise RateLimitExceeded(limit, window)


def reset_memory_store() -> None:
    _memory_store.clear()


__all__ = [
    "check_rate_limit",
    "enforce_student_rate_limit",
    "reset_memory_store",
    "RateLimitExceeded",
]
