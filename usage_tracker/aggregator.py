from __future__ import annotations

import logging
from collections.abc import Callable
from zoneinfo import ZoneInfo

from .clock import local_day_key, now_ms, previous_day_key, trailing_day_keys
from .errors import StorageFailure
from .locks import KeyedLocks
from .models import AggregateStatistics, DailyVisitRecord
from .storage import STATISTICS_KEY, VISITS_PREFIX, Storage, visits_key


class VisitAggregator:
    """Applies accepted durations to the daily bucket and the all-time rollup."""

    def __init__(
        self,
        storage: Storage,
        locks: KeyedLocks,
        tz: ZoneInfo,
        clock: Callable[[], int] = now_ms,
        logger: logging.Logger | None = None,
    ) -> None:
        self.storage = storage
        self.locks = locks
        self.tz = tz
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)

    def today_key(self) -> str:
        return local_day_key(self.clock(), self.tz)

    async def commit(self, domain: str, duration_ms: int, url: str) -> bool:
        if duration_ms <= 0:
            return False

        now = self.clock()
        day_key = local_day_key(now, self.tz)
        try:
            await self._add_to_day(day_key, domain, duration_ms, url)
            await self._add_to_statistics(domain, duration_ms, now)
        except StorageFailure:
            # The increment is dropped; counters stay consistent with what was written.
            self.logger.exception("Dropping %sms for %s: storage failure", duration_ms, domain)
            return False

        self.logger.debug("Committed %sms to %s on %s", duration_ms, domain, day_key)
        return True

    async def _add_to_day(self, day_key: str, domain: str, duration_ms: int, url: str) -> None:
        key = visits_key(day_key)
        # The whole day map is one stored document, so the lock covers the day key.
        async with self.locks.for_key(key):
            visits = await self.storage.get(key) or {}
            record = DailyVisitRecord.from_dict(visits.get(domain) or {})
            record.add(duration_ms, url)
            visits[domain] = record.to_dict()
            await self.storage.set(key, visits)

    async def _add_to_statistics(self, domain: str, duration_ms: int, now: int) -> None:
        async with self.locks.for_key(STATISTICS_KEY):
            stats = AggregateStatistics.from_dict(await self.storage.get(STATISTICS_KEY) or {})
            stats.add(domain, duration_ms, now)
            await self.storage.set(STATISTICS_KEY, stats.to_dict())

    async def get_daily_stats(self, day_key: str | None = None) -> dict[str, DailyVisitRecord]:
        key = visits_key(day_key or self.today_key())
        try:
            visits = await self.storage.get(key) or {}
        except StorageFailure:
            self.logger.exception("Failed to read %s", key)
            return {}
        return {domain: DailyVisitRecord.from_dict(raw) for domain, raw in visits.items()}

    async def get_statistics(self) -> AggregateStatistics:
        try:
            raw = await self.storage.get(STATISTICS_KEY)
        except StorageFailure:
            self.logger.exception("Failed to read statistics")
            raw = None
        if raw is None:
            return AggregateStatistics(last_updated=self.clock())
        return AggregateStatistics.from_dict(raw)

    async def get_range_totals(self, end_day: str | None = None, days: int = 7) -> list[tuple[str, int]]:
        totals: list[tuple[str, int]] = []
        for day_key in trailing_day_keys(end_day or self.today_key(), days):
            records = await self.get_daily_stats(day_key)
            totals.append((day_key, sum(record.total_time for record in records.values())))
        return totals

    async def purge_older_than(self, retention_days: int, today: str | None = None) -> int:
        if retention_days <= 0:
            return 0

        # ISO dates sort lexically, so anything before the cutoff key is expired.
        cutoff = visits_key(previous_day_key(today or self.today_key(), retention_days - 1))
        try:
            expired = [key for key in await self.storage.keys(VISITS_PREFIX) if key < cutoff]
            await self.storage.delete(expired)
        except StorageFailure:
            self.logger.exception("Retention cleanup failed")
            return 0

        if expired:
            self.logger.info("Removed %d daily buckets older than %s", len(expired), cutoff)
        return len(expired)
