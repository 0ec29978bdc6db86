"""
In-process resource locks. Enough for a single worker, and for tests.
"""

import asyncio
import time
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator

from tutorbook.core.metrics import lock_wait
from tutorbook.services.interfaces.resource_lock import ResourceLock


class LocalResourceLock(ResourceLock):
    def __init__(self):
        # Entries disappear once nobody holds or waits on the lock
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, *keys: str) -> AsyncIterator[None]:
        locks = [self._lock_for(key) for key in sorted(set(keys))]
        acquired: list[asyncio.Lock] = []
        start = time.perf_counter()
        try:
            for lock in locks:
                await lock.acquire()
                acquired.append(lock)
            lock_wait.labels(backend="local").observe(time.perf_counter() - start)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
