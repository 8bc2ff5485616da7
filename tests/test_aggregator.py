import asyncio
from zoneinfo import ZoneInfo

from usage_tracker.aggregator import VisitAggregator
from usage_tracker.errors import StorageFailure
from usage_tracker.locks import KeyedLocks
from usage_tracker.storage import STATISTICS_KEY, Storage, visits_key

UTC = ZoneInfo("UTC")


def make_aggregator(db, clock, storage=None) -> VisitAggregator:
    return VisitAggregator(storage or Storage(db), KeyedLocks(), UTC, clock=clock)


class FailingStorage(Storage):
    async def set(self, key, value):
        raise StorageFailure("disk full")


class YieldingStorage(Storage):
    """Gives other handlers a chance to run between a read and its write."""

    async def get(self, key):
        value = await super().get(key)
        await asyncio.sleep(0)
        return value


def test_two_commits_accumulate_domain_and_url_totals(db, clock) -> None:
    aggregator = make_aggregator(db, clock)

    async def scenario():
        await aggregator.commit("google.com", 125000, "https://google.com/u1")
        await aggregator.commit("google.com", 200000, "https://google.com/u2")
        return await aggregator.get_daily_stats("2026-02-01"), await aggregator.get_statistics()

    daily, stats = asyncio.run(scenario())

    record = daily["google.com"]
    assert record.total_time == 325000
    assert record.visit_count == 2
    assert record.urls == {"https://google.com/u1": 125000, "https://google.com/u2": 200000}

    assert stats.total_time == 325000
    assert stats.total_visits == 2
    assert stats.domains["google.com"].to_dict() == {"totalTime": 325000, "visitCount": 2}
    assert stats.last_updated == clock.now


def test_persisted_layout_uses_dated_key(db, clock) -> None:
    aggregator = make_aggregator(db, clock)
    storage = aggregator.storage

    async def scenario():
        await aggregator.commit("github.com", 5000, "https://github.com/")
        return await storage.get(visits_key("2026-02-01")), await storage.get(STATISTICS_KEY)

    visits, stats = asyncio.run(scenario())

    assert visits == {"github.com": {"totalTime": 5000, "visitCount": 1, "urls": {"https://github.com/": 5000}}}
    assert stats["totalVisits"] == 1


def test_concurrent_commits_do_not_lose_increments(db, clock) -> None:
    aggregator = make_aggregator(db, clock, storage=YieldingStorage(db))
    domains = ["a.com", "b.com"]

    async def scenario():
        await asyncio.gather(
            *(aggregator.commit(domains[i % 2], 1000 + i, f"https://{domains[i % 2]}/{i}") for i in range(20))
        )
        return await aggregator.get_daily_stats("2026-02-01"), await aggregator.get_statistics()

    daily, stats = asyncio.run(scenario())

    assert daily["a.com"].visit_count == 10
    assert daily["b.com"].visit_count == 10
    assert daily["a.com"].total_time + daily["b.com"].total_time == sum(1000 + i for i in range(20))
    assert stats.total_visits == 20
    assert stats.total_time == sum(1000 + i for i in range(20))


def test_storage_failure_drops_increment_without_raising(db, clock) -> None:
    aggregator = make_aggregator(db, clock, storage=FailingStorage(db))

    async def scenario():
        accepted = await aggregator.commit("google.com", 5000, "https://google.com/")
        return accepted, await aggregator.get_daily_stats("2026-02-01")

    accepted, daily = asyncio.run(scenario())

    assert accepted is False
    assert daily == {}


def test_commit_lands_in_local_day_bucket(db, clock) -> None:
    # 12:00 UTC on Feb 1 is 01:00 on Feb 2 in Auckland (NZDT, UTC+13).
    clock.advance(2 * 3600 * 1000)
    aggregator = VisitAggregator(Storage(db), KeyedLocks(), ZoneInfo("Pacific/Auckland"), clock=clock)

    async def scenario():
        await aggregator.commit("example.com", 3000, "https://example.com/")
        return await aggregator.get_daily_stats("2026-02-01"), await aggregator.get_daily_stats("2026-02-02")

    feb_1, feb_2 = asyncio.run(scenario())

    assert feb_1 == {}
    assert "example.com" in feb_2


def test_range_totals_and_purge(db, clock) -> None:
    aggregator = make_aggregator(db, clock)
    storage = aggregator.storage
    day_ms = 24 * 60 * 60 * 1000

    async def scenario():
        for _ in range(3):
            await aggregator.commit("example.com", 4000, "https://example.com/")
            clock.advance(day_ms)
        clock.now -= day_ms
        totals = await aggregator.get_range_totals("2026-02-03", days=4)
        removed = await aggregator.purge_older_than(2, today="2026-02-03")
        return totals, removed, await storage.keys("visits_")

    totals, removed, remaining = asyncio.run(scenario())

    assert totals == [("2026-01-31", 0), ("2026-02-01", 4000), ("2026-02-02", 4000), ("2026-02-03", 4000)]
    assert removed == 1
    assert remaining == ["visits_2026-02-02", "visits_2026-02-03"]
