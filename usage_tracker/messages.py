"""Closed set of inbound requests and browser events, validated at the boundary.

Payloads arrive as loosely-typed JSON objects from the extension. They are
turned into one of the dataclasses below, or rejected with InvalidRequest,
before anything in the engine sees them.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Union

from .errors import InvalidRequest


@dataclass(frozen=True, slots=True)
class GetDailyStats:
    date: str | None = None


@dataclass(frozen=True, slots=True)
class GetWeekSummary:
    date: str | None = None


@dataclass(frozen=True, slots=True)
class GetStatistics:
    pass


@dataclass(frozen=True, slots=True)
class ToggleTracking:
    enabled: bool


@dataclass(frozen=True, slots=True)
class GetSettings:
    pass


@dataclass(frozen=True, slots=True)
class SaveSettings:
    settings: dict[str, Any]


@dataclass(frozen=True, slots=True)
class PageEvent:
    tab_id: int | None
    url: str
    timestamp: int
    event: str = "heartbeat"


@dataclass(frozen=True, slots=True)
class FocusTimerGet:
    pass


@dataclass(frozen=True, slots=True)
class FocusTimerStart:
    remaining_ms: int | None = None
    settings: dict[str, Any] | None = None


@dataclass(frozen=True, slots=True)
class FocusTimerPause:
    pass


@dataclass(frozen=True, slots=True)
class FocusTimerReset:
    pass


@dataclass(frozen=True, slots=True)
class FocusTimerUpdateSettings:
    settings: dict[str, Any]


@dataclass(frozen=True, slots=True)
class ExportData:
    pass


@dataclass(frozen=True, slots=True)
class ClearData:
    pass


Request = Union[
    GetDailyStats,
    GetWeekSummary,
    GetStatistics,
    ToggleTracking,
    GetSettings,
    SaveSettings,
    PageEvent,
    FocusTimerGet,
    FocusTimerStart,
    FocusTimerPause,
    FocusTimerReset,
    FocusTimerUpdateSettings,
    ExportData,
    ClearData,
]


@dataclass(frozen=True, slots=True)
class TabActivated:
    tab_id: int
    url: str | None


@dataclass(frozen=True, slots=True)
class TabUpdated:
    tab_id: int
    url: str | None
    status: str | None
    active: bool = False


@dataclass(frozen=True, slots=True)
class TabRemoved:
    tab_id: int


@dataclass(frozen=True, slots=True)
class WindowFocusChanged:
    window_id: int
    tab_id: int | None = None
    url: str | None = None


BrowserEvent = Union[TabActivated, TabUpdated, TabRemoved, WindowFocusChanged]


def _int(payload: dict[str, Any], name: str, *, required: bool = True) -> int | None:
    value = payload.get(name)
    if value is None:
        if required:
            raise InvalidRequest(f"Missing field: {name}")
        return None
    # bool is an int subclass but never a valid id or timestamp.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidRequest(f"Field {name} must be a number")
    return int(value)


def _str(payload: dict[str, Any], name: str, *, required: bool = True) -> str | None:
    value = payload.get(name)
    if value is None:
        if required:
            raise InvalidRequest(f"Missing field: {name}")
        return None
    if not isinstance(value, str):
        raise InvalidRequest(f"Field {name} must be a string")
    return value


def _day(payload: dict[str, Any]) -> str | None:
    value = _str(payload, "date", required=False)
    if value is None:
        return None
    try:
        return date.fromisoformat(value).isoformat()
    except ValueError as exc:
        raise InvalidRequest(f"Invalid date: {value}") from exc


def _bool(payload: dict[str, Any], name: str) -> bool:
    value = payload.get(name)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise InvalidRequest(f"Field {name} must be a boolean")
    return value


def _mapping(payload: dict[str, Any], name: str, *, required: bool = True) -> dict[str, Any] | None:
    value = payload.get(name)
    if value is None:
        if required:
            raise InvalidRequest(f"Missing field: {name}")
        return None
    if not isinstance(value, dict):
        raise InvalidRequest(f"Field {name} must be an object")
    return value


def _toggle(payload: dict[str, Any]) -> ToggleTracking:
    enabled = payload.get("enabled")
    if not isinstance(enabled, bool):
        raise InvalidRequest("Field enabled must be a boolean")
    return ToggleTracking(enabled=enabled)


def _page_event(payload: dict[str, Any]) -> PageEvent:
    return PageEvent(
        tab_id=_int(payload, "tabId", required=False),
        url=_str(payload, "url"),
        timestamp=_int(payload, "timestamp"),
        event=_str(payload, "event", required=False) or "heartbeat",
    )


def _focus_start(payload: dict[str, Any]) -> FocusTimerStart:
    remaining = _int(payload, "remainingMs", required=False)
    if remaining is not None and remaining < 0:
        raise InvalidRequest("Field remainingMs must not be negative")
    return FocusTimerStart(remaining_ms=remaining, settings=_mapping(payload, "settings", required=False))


_REQUEST_PARSERS = {
    "getDailyStats": lambda p: GetDailyStats(date=_day(p)),
    "getWeekSummary": lambda p: GetWeekSummary(date=_day(p)),
    "getStatistics": lambda p: GetStatistics(),
    "toggleTracking": _toggle,
    "getSettings": lambda p: GetSettings(),
    "saveSettings": lambda p: SaveSettings(settings=_mapping(p, "settings")),
    "pageEvent": _page_event,
    "focusTimer:get": lambda p: FocusTimerGet(),
    "focusTimer:start": _focus_start,
    "focusTimer:pause": lambda p: FocusTimerPause(),
    "focusTimer:reset": lambda p: FocusTimerReset(),
    "focusTimer:updateSettings": lambda p: FocusTimerUpdateSettings(settings=_mapping(p, "settings")),
    "exportData": lambda p: ExportData(),
    "clearData": lambda p: ClearData(),
}

_EVENT_PARSERS = {
    "tabActivated": lambda p: TabActivated(tab_id=_int(p, "tabId"), url=_str(p, "url", required=False)),
    "tabUpdated": lambda p: TabUpdated(
        tab_id=_int(p, "tabId"),
        url=_str(p, "url", required=False),
        status=_str(p, "status", required=False),
        active=_bool(p, "active"),
    ),
    "tabRemoved": lambda p: TabRemoved(tab_id=_int(p, "tabId")),
    "windowFocusChanged": lambda p: WindowFocusChanged(
        window_id=_int(p, "windowId"),
        tab_id=_int(p, "tabId", required=False),
        url=_str(p, "url", required=False),
    ),
}


def parse_request(payload: Any) -> Request:
    if not isinstance(payload, dict):
        raise InvalidRequest("Request must be a JSON object")

    # Content pages tag heartbeats with "type"; everything else names an "action".
    action = "pageEvent" if payload.get("type") == "pageEvent" else payload.get("action")
    parser = _REQUEST_PARSERS.get(action) if isinstance(action, str) else None
    if parser is None:
        raise InvalidRequest(f"Unknown action: {action!r}")
    return parser(payload)


def parse_event(payload: Any) -> BrowserEvent:
    if not isinstance(payload, dict):
        raise InvalidRequest("Event must be a JSON object")

    name = payload.get("event")
    parser = _EVENT_PARSERS.get(name) if isinstance(name, str) else None
    if parser is None:
        raise InvalidRequest(f"Unknown event: {name!r}")
    return parser(payload)
