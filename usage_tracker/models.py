from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

WORK_MODE = "work"
BREAK_MODE = "break"

DEFAULT_WORK_MS = 25 * 60 * 1000
DEFAULT_BREAK_MS = 5 * 60 * 1000
DEFAULT_LONG_BREAK_MS = 15 * 60 * 1000
DEFAULT_SESSIONS_BEFORE_LONG = 4

DEFAULT_EXCLUDED_DOMAINS = ("chrome://", "chrome-extension://", "about:")
DEFAULT_DAILY_GOAL_MINUTES = 480
DEFAULT_RETENTION_DAYS = 30


@dataclass(slots=True)
class TrackingSession:
    tab_id: int
    url: str
    domain: str
    start_time: int
    last_update: int


@dataclass(frozen=True, slots=True)
class HeartbeatSession:
    tab_id: int
    last_timestamp: int
    url: str


@dataclass(slots=True)
class DailyVisitRecord:
    total_time: int = 0
    visit_count: int = 0
    urls: dict[str, int] = field(default_factory=dict)

    def add(self, duration_ms: int, url: str) -> None:
        self.total_time += duration_ms
        self.visit_count += 1
        self.urls[url] = self.urls.get(url, 0) + duration_ms

    def to_dict(self) -> dict[str, Any]:
        return {"totalTime": self.total_time, "visitCount": self.visit_count, "urls": dict(self.urls)}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> DailyVisitRecord:
        return cls(
            total_time=int(raw.get("totalTime", 0)),
            visit_count=int(raw.get("visitCount", 0)),
            urls={str(url): int(ms) for url, ms in (raw.get("urls") or {}).items()},
        )


@dataclass(slots=True)
class DomainTotals:
    total_time: int = 0
    visit_count: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"totalTime": self.total_time, "visitCount": self.visit_count}


@dataclass(slots=True)
class AggregateStatistics:
    total_time: int = 0
    total_visits: int = 0
    domains: dict[str, DomainTotals] = field(default_factory=dict)
    last_updated: int = 0

    def add(self, domain: str, duration_ms: int, now: int) -> None:
        self.total_time += duration_ms
        self.total_visits += 1
        self.last_updated = now
        totals = self.domains.setdefault(domain, DomainTotals())
        totals.total_time += duration_ms
        totals.visit_count += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalTime": self.total_time,
            "totalVisits": self.total_visits,
            "domains": {name: totals.to_dict() for name, totals in self.domains.items()},
            "lastUpdated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> AggregateStatistics:
        domains = {
            str(name): DomainTotals(int(item.get("totalTime", 0)), int(item.get("visitCount", 0)))
            for name, item in (raw.get("domains") or {}).items()
        }
        return cls(
            total_time=int(raw.get("totalTime", 0)),
            total_visits=int(raw.get("totalVisits", 0)),
            domains=domains,
            last_updated=int(raw.get("lastUpdated", 0)),
        )


@dataclass(slots=True)
class FocusTimerState:
    mode: str = WORK_MODE
    is_running: bool = False
    remaining_ms: int = DEFAULT_WORK_MS
    work_ms: int = DEFAULT_WORK_MS
    break_ms: int = DEFAULT_BREAK_MS
    long_break_ms: int = DEFAULT_LONG_BREAK_MS
    sessions_before_long: int = DEFAULT_SESSIONS_BEFORE_LONG
    sessions_completed: int = 0
    last_updated: int = 0

    def live_remaining(self, now: int) -> int:
        # While running, remaining_ms is a snapshot taken at last_updated.
        if not self.is_running:
            return self.remaining_ms
        elapsed = max(0, now - self.last_updated)
        return max(0, self.remaining_ms - elapsed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "isRunning": self.is_running,
            "remainingMs": self.remaining_ms,
            "workMs": self.work_ms,
            "breakMs": self.break_ms,
            "longBreakMs": self.long_break_ms,
            "sessionsBeforeLong": self.sessions_before_long,
            "sessionsCompleted": self.sessions_completed,
            "lastUpdated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> FocusTimerState:
        defaults = cls()
        return cls(
            mode=BREAK_MODE if raw.get("mode") == BREAK_MODE else WORK_MODE,
            is_running=bool(raw.get("isRunning", False)),
            remaining_ms=int(raw.get("remainingMs", defaults.remaining_ms)),
            work_ms=int(raw.get("workMs", defaults.work_ms)),
            break_ms=int(raw.get("breakMs", defaults.break_ms)),
            long_break_ms=int(raw.get("longBreakMs", defaults.long_break_ms)),
            sessions_before_long=int(raw.get("sessionsBeforeLong", defaults.sessions_before_long)),
            sessions_completed=int(raw.get("sessionsCompleted", 0)),
            last_updated=int(raw.get("lastUpdated", 0)),
        )


@dataclass(slots=True)
class Settings:
    tracking_enabled: bool = True
    daily_goal_minutes: int = DEFAULT_DAILY_GOAL_MINUTES
    excluded_domains: tuple[str, ...] = DEFAULT_EXCLUDED_DOMAINS
    data_retention_days: int = DEFAULT_RETENTION_DAYS

    def to_dict(self) -> dict[str, Any]:
        return {
            "trackingEnabled": self.tracking_enabled,
            "dailyGoal": self.daily_goal_minutes,
            "excludedDomains": list(self.excluded_domains),
            "dataRetentionDays": self.data_retention_days,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Settings:
        defaults = cls()
        excluded = raw.get("excludedDomains")
        return cls(
            tracking_enabled=bool(raw.get("trackingEnabled", defaults.tracking_enabled)),
            daily_goal_minutes=int(raw.get("dailyGoal", defaults.daily_goal_minutes)),
            excluded_domains=(
                tuple(str(item) for item in excluded)
                if isinstance(excluded, (list, tuple)) and excluded
                else defaults.excluded_domains
            ),
            data_retention_days=int(raw.get("dataRetentionDays", defaults.data_retention_days)),
        )


@dataclass(frozen=True, slots=True)
class ReportRow:
    domain: str
    total_time: int
    visit_count: int
