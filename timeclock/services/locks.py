"""
Per-key serialization for read-validate-write sequences.

Punch creation reads the last persisted punch, validates the requested action
against it and writes a new row; two requests for the same employee must not
interleave there.  The registry hands out one `asyncio.Lock` per key.  The
dict itself is guarded by a thread lock and holds locks weakly, so idle keys
do not accumulate.
"""

from __future__ import annotations

import asyncio
import threading
import weakref
from collections.abc import AsyncIterator, Hashable
from contextlib import asynccontextmanager


class KeyedLocks:
    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: weakref.WeakValueDictionary[Hashable, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def get(self, key: Hashable) -> asyncio.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[key] = lock
            return lock

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self.get(key)
        async with lock:
            yield

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


employee_locks = KeyedLocks()
overtime_locks = KeyedLocks()
