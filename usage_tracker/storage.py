from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from typing import Any

from .db import Database
from .errors import StorageFailure

VISITS_PREFIX = "visits_"
STATISTICS_KEY = "statistics"
FOCUS_TIMER_KEY = "focus_timer"
SETTINGS_KEY = "settings"


def visits_key(day_key: str) -> str:
    return f"{VISITS_PREFIX}{day_key}"


class Storage:
    """Async key-value facade over the SQLite kv table.

    Every call suspends the caller while the query runs on a worker thread, so a
    read and its matching write are never atomic with respect to other handlers.
    Callers that read-modify-write hold the key's lock from KeyedLocks.
    """

    def __init__(self, db: Database, logger: logging.Logger | None = None) -> None:
        self.db = db
        self.logger = logger or logging.getLogger(__name__)

    async def get(self, key: str) -> Any | None:
        raw = await self._run(self.db.get_value, key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise StorageFailure(f"Stored value for {key!r} is not valid JSON") from exc

    async def set(self, key: str, value: Any) -> None:
        await self._run(self.db.set_value, key, json.dumps(value, separators=(",", ":")))

    async def delete(self, keys: list[str]) -> None:
        await self._run(self.db.delete_values, keys)

    async def keys(self, prefix: str = "") -> list[str]:
        return await self._run(self.db.list_keys, prefix)

    async def snapshot(self) -> dict[str, Any]:
        raw = await self._run(self.db.dump_values)
        try:
            return {key: json.loads(value) for key, value in raw.items()}
        except ValueError as exc:
            raise StorageFailure("Stored data contains invalid JSON") from exc

    async def clear(self) -> None:
        await self._run(self.db.clear_values)

    async def _run(self, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except sqlite3.Error as exc:
            raise StorageFailure(f"{func.__name__} failed: {exc}") from exc
