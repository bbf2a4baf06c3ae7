"""
Realtime Broadcast Hub

In-memory topic fan-out for WebSocket subscribers in a single process.

Topics are plain strings (``class:<id>``, ``student:<id>``,
``teacher:<id>``). Delivery is best effort: a subscriber whose send fails or
does not complete within ``broadcast_send_timeout_seconds`` is unsubscribed
from every topic, and the publisher never sees the error.

Usage:
    from enrollment_hub.core.broadcast import get_hub

    hub = get_hub()
    await hub.subscribe("class:cls-101", websocket)
    await hub.publish("class:cls-101", {"event": "capacity-update", ...})
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any, Protocol

from enrollment_hub.core.config import settings

logger = logging.getLogger(__name__)


class Subscriber(Protocol):
    """Anything that can receive a JSON message (e.g. a Starlette WebSocket)."""

    async def send_json(self, data: Any) -> None: ...


class BroadcastHub:
    """Tracks topic subscriptions and publishes messages to them."""

    def __init__(self, send_timeout: float | None = None) -> None:
        self._lock = asyncio.Lock()
        self._topics: dict[str, set[Subscriber]] = defaultdict(set)
        self._send_timeout = (
            send_timeout if send_timeout is not None else settings.broadcast_send_timeout_seconds
        )

    async def subscribe(self, topic: str, subscriber: Subscriber) -> None:
        async with self._lock:
            self._topics[topic].add(subscriber)
        logger.debug(f"Subscriber added to {topic}")

    async def unsubscribe(self, topic: str, subscriber: Subscriber) -> None:
        async with self._lock:
            self._discard(topic, subscriber)

    async def unsubscribe_all(self, subscriber: Subscriber) -> None:
        """Remove a subscriber from every topic (e.g. on disconnect)."""
        async with self._lock:
            for topic in list(self._topics):
                self._discard(topic, subscriber)

    def _discard(self, topic: str, subscriber: Subscriber) -> None:
        subscribers = self._topics.get(topic)
        if not subscribers:
            return
        subscribers.discard(subscriber)
        if not subscribers:
            self._topics.pop(topic, None)

    async def _send(self, subscriber: Subscriber, message: dict[str, Any]) -> bool:
        try:
            await asyncio.wait_for(subscriber.send_json(message), timeout=self._send_timeout)
            return True
        except Exception as e:
            logger.debug(f"Dropping realtime subscriber after failed send: {e!r}")
            return False

    async def publish(self, topic: str, message: dict[str, Any]) -> int:
        """
        Send a message to every subscriber of ``topic``.

        Sends run concurrently, so one slow subscriber only delays the others
        by at most the send timeout.

        Returns:
            Number of subscribers that received the message
        """
        async with self._lock:
            targets = list(self._topics.get(topic, ()))

        if not targets:
            return 0

        results = await asyncio.gather(*(self._send(target, message) for target in targets))

        failed = [target for target, delivered in zip(targets, results) if not delivered]
        for subscriber in failed:
            await self.unsubscribe_all(subscriber)

        return len(targets) - len(failed)

    def subscriber_count(self, topic: str) -> int:
        return len(self._topics.get(topic, ()))

    @property
    def topic_count(self) -> int:
        return len(self._topics)


# Global hub instance
_hub: BroadcastHub | None = None


def get_hub() -> BroadcastHub:
    """Get the process-wide broadcast hub, creating it on first use."""
    global _hub
    if _hub is None:
        _hub = BroadcastHub()
    return _hub


def reset_hub() -> None:
    """Discard the global hub (used on shutdown and between tests)."""
    global _hub
    _hub = None
