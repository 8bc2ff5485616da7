from __future__ import annotations

from typing import Protocol

from .aggregator import VisitAggregator
from .models import WORK_MODE, DailyVisitRecord, FocusTimerState, ReportRow

try:
    import discord
except ModuleNotFoundError:  # pragma: no cover - allows tests without discord.py installed
    discord = None

MAX_REPORT_ROWS = 10


def format_duration(milliseconds: int) -> str:
    """Render a duration as "<1m", "Nm" or "Hh Mm"."""
    minutes = max(0, int(milliseconds)) // 60_000
    hours, minutes = divmod(minutes, 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m"
    return "<1m"


def format_countdown(milliseconds: int) -> str:
    """Render the focus timer's remaining time as MM:SS."""
    total_seconds = max(0, int(milliseconds)) // 1000
    minutes, seconds = divmod(total_seconds, 60)
    return f"{minutes:02}:{seconds:02}"


def describe_focus_state(state: FocusTimerState) -> str:
    label = "Work session" if state.mode == WORK_MODE else "Break"
    status = "running" if state.is_running else "paused"
    return (
        f"{label} ({status}): `{format_countdown(state.remaining_ms)}` left, "
        f"{state.sessions_completed} sessions completed"
    )


def build_rows(records: dict[str, DailyVisitRecord]) -> list[ReportRow]:
    rows = [
        ReportRow(domain=domain, total_time=record.total_time, visit_count=record.visit_count)
        for domain, record in records.items()
        if record.total_time > 0
    ]
    rows.sort(key=lambda item: (-item.total_time, item.domain))
    return rows


class ReportChannelLike(Protocol):
    async def send(self, content: str, **kwargs): ...


class Reporter:
    def __init__(self, aggregator: VisitAggregator, max_rows: int = MAX_REPORT_ROWS) -> None:
        self.aggregator = aggregator
        self.max_rows = max_rows

    async def build_rows_for_day(self, day_local: str) -> list[ReportRow]:
        return build_rows(await self.aggregator.get_daily_stats(day_local))

    def build_report_content(self, day_local: str, rows: list[ReportRow], goal_minutes: int = 0) -> str:
        header = f"**Daily Browsing Activity - {day_local}**"

        if not rows:
            return f"{header}\nNo tracked activity for {day_local}."

        lines = [
            f"- {row.domain}: `{format_duration(row.total_time)}` ({row.visit_count} visits)"
            for row in rows[: self.max_rows]
        ]
        hidden = len(rows) - self.max_rows
        if hidden > 0:
            lines.append(f"- ...and {hidden} more sites")

        total = sum(row.total_time for row in rows)
        lines.append(f"Total: `{format_duration(total)}` across {len(rows)} sites")
        if goal_minutes > 0:
            percent = total * 100 // (goal_minutes * 60_000)
            lines.append(f"Daily goal: {percent}% of {format_duration(goal_minutes * 60_000)}")

        body = "\n".join(lines)
        return f"{header}\n{body}"

    async def post_report(self, report_channel: ReportChannelLike, day_local: str, goal_minutes: int = 0) -> bool:
        rows = await self.build_rows_for_day(day_local)
        content = self.build_report_content(day_local, rows, goal_minutes)

        kwargs = {}
        if discord is not None:
            # Never ping anyone from automated summaries.
            kwargs["allowed_mentions"] = discord.AllowedMentions.none()

        await report_channel.send(content, **kwargs)
        return True
