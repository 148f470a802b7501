"""
Keyed Locks
===========
Per-key asyncio locks that are dropped once no task holds or awaits them.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List


class KeyedLock:
    """
    One asyncio.Lock per key, reference counted.

    Example:
        locks = KeyedLock()
        async with locks.acquire("user-42"):
            ...
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}

    @asynccontextmanager
    async def acquire(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
            self._waiters[key] = 0
        self._waiters[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @property
    def active_keys(self) -> List[str]:
        return list(self._locks)
