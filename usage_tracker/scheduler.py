from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections.abc import Awaitable, Callable

from .clock import now_ms
from .db import Database
from .errors import StorageFailure

AlarmHandler = Callable[[], Awaitable[None]]

# Longest single sleep; the wall clock is re-read after each slice so a
# suspended host fires overdue alarms shortly after it resumes.
MAX_SLEEP_SECONDS = 30.0


class Scheduler:
    """Named wake-ups persisted in SQLite and re-armed on restart."""

    def __init__(
        self,
        db: Database,
        clock: Callable[[], int] = now_ms,
        max_sleep_seconds: float = MAX_SLEEP_SECONDS,
        logger: logging.Logger | None = None,
    ) -> None:
        self.db = db
        self.clock = clock
        self.max_sleep_seconds = max_sleep_seconds
        self.logger = logger or logging.getLogger(__name__)
        self._handlers: dict[str, AlarmHandler] = {}
        self._waiters: dict[str, asyncio.Task[None]] = {}
        self._fire_at: dict[str, int] = {}

    def register(self, name: str, handler: AlarmHandler) -> None:
        self._handlers[name] = handler

    def pending(self, name: str) -> int | None:
        return self._fire_at.get(name)

    async def schedule_at(self, name: str, when_ms: int) -> None:
        self._cancel_waiter(name)
        await self._db(self.db.set_alarm, name, when_ms)
        self._arm(name, when_ms)

    async def cancel(self, name: str) -> None:
        self._cancel_waiter(name)
        await self._db(self.db.delete_alarm, name)

    async def restore(self) -> int:
        alarms = await self._db(self.db.list_alarms)
        for name, when_ms in alarms:
            self._cancel_waiter(name)
            self._arm(name, when_ms)
        if alarms:
            self.logger.info("Restored %d pending alarms", len(alarms))
        return len(alarms)

    async def shutdown(self) -> None:
        waiters = list(self._waiters.values())
        for name in list(self._waiters):
            self._cancel_waiter(name)
        await asyncio.gather(*waiters, return_exceptions=True)

    def _arm(self, name: str, when_ms: int) -> None:
        self._fire_at[name] = when_ms
        self._waiters[name] = asyncio.create_task(self._wait_and_fire(name, when_ms), name=f"alarm-{name}")

    def _cancel_waiter(self, name: str) -> None:
        self._fire_at.pop(name, None)
        waiter = self._waiters.pop(name, None)
        if waiter is not None and not waiter.done() and waiter is not asyncio.current_task():
            waiter.cancel()

    async def _wait_and_fire(self, name: str, when_ms: int) -> None:
        while True:
            remaining_ms = when_ms - self.clock()
            if remaining_ms <= 0:
                break
            await asyncio.sleep(min(remaining_ms / 1000, self.max_sleep_seconds))

        # Drop the record before the handler runs so it can re-arm the same name.
        if self._waiters.get(name) is asyncio.current_task():
            del self._waiters[name]
            self._fire_at.pop(name, None)
        try:
            await asyncio.to_thread(self.db.delete_alarm, name)
        except Exception:
            self.logger.exception("Failed to clear fired alarm %s", name)

        handler = self._handlers.get(name)
        if handler is None:
            self.logger.warning("Alarm %s fired with no handler registered", name)
            return

        self.logger.info("Alarm %s fired", name)
        try:
            await handler()
        except Exception:
            self.logger.exception("Alarm handler %s failed", name)

    async def _db(self, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except sqlite3.Error as exc:
            raise StorageFailure(f"{func.__name__} failed: {exc}") from exc
