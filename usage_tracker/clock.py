from __future__ import annotations

import time
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo


def now_ms() -> int:
    return int(time.time() * 1000)


def local_day_key(timestamp_ms: int, tz: ZoneInfo) -> str:
    moment = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    return moment.astimezone(tz).date().isoformat()


def previous_day_key(day_key: str, days: int = 1) -> str:
    return (date.fromisoformat(day_key) - timedelta(days=days)).isoformat()


def trailing_day_keys(end_day: str, days: int) -> list[str]:
    """Return `days` ISO dates ending at (and including) end_day, oldest first."""
    end = date.fromisoformat(end_day)
    return [(end - timedelta(days=offset)).isoformat() for offset in range(days - 1, -1, -1)]
