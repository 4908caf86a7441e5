"""
Keyed asyncio locks.

One lock per key (round id, player id). A lock is dropped as soon as nobody
holds or waits on it, so the map only ever contains keys in use.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Dict


class KeyedLocks:
    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._refs: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key):
        key = str(key)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._refs[key] = self._refs.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._refs[key] -= 1
            if self._refs[key] <= 0:
                self._refs.pop(key, None)
                self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)
