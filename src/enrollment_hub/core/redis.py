"""
Redis Configuration

Async Redis client used for request rate limiting. Redis is optional: when it
is unreachable at startup the API runs with in-memory fallbacks.
"""

import logging

from redis.asyncio import Redis, from_url

from enrollment_hub.core.config import settings

logger = logging.getLogger(__name__)

# Redis client instance
redis_client: Redis | None = None


async def init_redis() -> Redis:
    """
    Initialize Redis connection.

    Call this on application startup. Raises if Redis cannot be reached;
    the client stays unset in that case.
    """
    global redis_client
    client = from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    await client.ping()
    redis_client = client
    return redis_client


def get_redis() -> Redis | None:
    """Get the Redis client, or None if Redis is not available."""
    return redis_client


def is_redis_available() -> bool:
    return redis_client is not None


async def close_redis() -> None:
    """Close Redis connection."""
    global redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None
