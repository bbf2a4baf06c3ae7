"""
Per-Class Lock Registry

One asyncio lock per class serializes every coordinated operation on that
class; operations on different classes never wait for each other.

Locks are created on first use and discarded when no holder or waiter is
left, so the registry only ever holds entries for classes with work in
flight. ``asyncio.Lock`` wakes waiters in FIFO order.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class _LockEntry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class ClassLockRegistry:
    """Registry of lazily created, reference-counted per-class locks."""

    def __init__(self) -> None:
        self._entries: dict[str, _LockEntry] = {}

    @asynccontextmanager
    async def hold(self, class_id: str) -> AsyncIterator[None]:
        """
        Hold the lock for ``class_id`` for the duration of the block.

        Usage:
            async with registry.hold("cls-101"):
                ...
        """
        entry = self._entries.get(class_id)
        if entry is None:
            entry = self._entries[class_id] = _LockEntry()
        entry.users += 1

        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0 and self._entries.get(class_id) is entry:
                del self._entries[class_id]

    def is_locked(self, class_id: str) -> bool:
        entry = self._entries.get(class_id)
        return entry is not None and entry.lock.locked()

    def __len__(self) -> int:
        return len(self._entries)
