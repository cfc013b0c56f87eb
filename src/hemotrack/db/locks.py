"""
Per-record locks for read-modify-write sequences.

A lock exists only while some task holds or waits on its key, so the map
stays bounded by the number of in-flight operations.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator
import asyncio


class KeyedLock:
    """
    One asyncio.Lock per key.

    Usage:
        locks = KeyedLock()
        async with locks.hold(record_id):
            ...
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)

    def __contains__(self, key: str) -> bool:
        return key in self._locks
