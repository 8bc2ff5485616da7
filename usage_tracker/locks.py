from __future__ import annotations

import asyncio


class KeyedLocks:
    """One asyncio.Lock per persisted key.

    Read-modify-write of a stored record holds the lock for that record's key,
    so overlapping updates to the same key queue up instead of losing increments.
    Distinct keys never block each other.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def for_key(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)
