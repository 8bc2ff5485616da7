import asyncio
from zoneinfo import ZoneInfo

from usage_tracker.aggregator import VisitAggregator
from usage_tracker.locks import KeyedLocks
from usage_tracker.models import BREAK_MODE, FocusTimerState
from usage_tracker.reporter import Reporter, describe_focus_state, format_countdown, format_duration
from usage_tracker.storage import Storage


class FakeChannel:
    def __init__(self) -> None:
        self.sent: list[str] = []

    async def send(self, content: str, **kwargs) -> None:
        self.sent.append(content)


def make_reporter(db, clock, max_rows: int = 10) -> Reporter:
    aggregator = VisitAggregator(Storage(db), KeyedLocks(), ZoneInfo("UTC"), clock=clock)
    return Reporter(aggregator, max_rows=max_rows)


def test_format_duration() -> None:
    assert format_duration(0) == "<1m"
    assert format_duration(30000) == "<1m"
    assert format_duration(59999) == "<1m"
    assert format_duration(60000) == "1m"
    assert format_duration(90000) == "1m"
    assert format_duration(3600000) == "1h 0m"
    assert format_duration(5400000) == "1h 30m"
    assert format_duration(7200000) == "2h 0m"
    assert format_duration(9000000) == "2h 30m"


def test_format_countdown() -> None:
    assert format_countdown(25 * 60_000) == "25:00"
    assert format_countdown(61_999) == "01:01"
    assert format_countdown(-5) == "00:00"


def test_report_rows_sorted_by_time_desc(db, clock) -> None:
    reporter = make_reporter(db, clock)

    async def scenario():
        await reporter.aggregator.commit("b.com", 100_000, "https://b.com/")
        await reporter.aggregator.commit("a.com", 300_000, "https://a.com/")
        await reporter.aggregator.commit("c.com", 100_000, "https://c.com/")
        return await reporter.build_rows_for_day("2026-02-01")

    rows = asyncio.run(scenario())

    assert [row.domain for row in rows] == ["a.com", "b.com", "c.com"]
    assert [row.total_time for row in rows] == [300_000, 100_000, 100_000]


def test_report_content_with_goal_and_overflow(db, clock) -> None:
    reporter = make_reporter(db, clock, max_rows=1)

    async def scenario():
        await reporter.aggregator.commit("a.com", 3_600_000, "https://a.com/")
        await reporter.aggregator.commit("b.com", 1_800_000, "https://b.com/")
        channel = FakeChannel()
        await reporter.post_report(channel, "2026-02-01", goal_minutes=180)
        return channel.sent

    sent = asyncio.run(scenario())

    assert len(sent) == 1
    content = sent[0]
    assert "a.com: `1h 0m` (1 visits)" in content
    assert "b.com" not in content
    assert "...and 1 more sites" in content
    assert "Total: `1h 30m` across 2 sites" in content
    assert "Daily goal: 50% of 3h 0m" in content


def test_no_activity_message(db, clock) -> None:
    reporter = make_reporter(db, clock)

    content = reporter.build_report_content("2026-02-01", [])

    assert "No tracked activity for 2026-02-01." in content


def test_describe_focus_state() -> None:
    state = FocusTimerState(mode=BREAK_MODE, is_running=True, remaining_ms=300_000, sessions_completed=2)

    assert describe_focus_state(state) == "Break (running): `05:00` left, 2 sessions completed"
