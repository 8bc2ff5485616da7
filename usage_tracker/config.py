from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


@dataclass(frozen=True, slots=True)
class Config:
    discord_token: str
    guild_id: int
    report_channel_id: int
    timezone: ZoneInfo
    db_path: Path
    bridge_host: str
    bridge_port: int
    report_now_cooldown_seconds: int


def _required_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ValueError(f"Missing required environment variable: {name}")
    return value.strip()


def _parse_positive_int(name: str, value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc

    if parsed <= 0:
        raise ValueError(f"Environment variable {name} must be positive")
    return parsed


def _required_int_env(name: str) -> int:
    return _parse_positive_int(name, _required_env(name))


def _optional_int_env(name: str, default: int) -> int:
    value = os.getenv(name, "").strip()
    if not value:
        return default
    return _parse_positive_int(name, value)


def _timezone_from_env(name: str) -> ZoneInfo:
    tz_name = _required_env(name)
    try:
        return ZoneInfo(tz_name)
    except ZoneInfoNotFoundError as exc:
        raise ValueError(f"Invalid timezone in {name}: {tz_name}") from exc


def load_config() -> Config:
    bridge_port = _optional_int_env("BRIDGE_PORT", 8765)
    if bridge_port > 65535:
        raise ValueError("Environment variable BRIDGE_PORT must be a valid port")

    return Config(
        discord_token=_required_env("DISCORD_TOKEN"),
        guild_id=_required_int_env("GUILD_ID"),
        report_channel_id=_required_int_env("REPORT_CHANNEL_ID"),
        timezone=_timezone_from_env("TIMEZONE"),
        db_path=Path(os.getenv("DB_PATH", "").strip() or "usage_tracker.db"),
        bridge_host=os.getenv("BRIDGE_HOST", "").strip() or "127.0.0.1",
        bridge_port=bridge_port,
        report_now_cooldown_seconds=_optional_int_env("REPORT_NOW_COOLDOWN_SECONDS", 3600),
    )
