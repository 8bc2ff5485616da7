from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any
from zoneinfo import ZoneInfo

from .aggregator import VisitAggregator
from .clock import now_ms
from .db import Database
from .errors import StorageFailure
from .focus_timer import ALARM_NAME, FocusTimerEngine
from .heartbeat import HeartbeatDedupEngine
from .locks import KeyedLocks
from .messages import BrowserEvent, TabActivated, TabRemoved, TabUpdated, WindowFocusChanged
from .models import Settings
from .scheduler import Scheduler
from .storage import SETTINGS_KEY, Storage
from .tracker import TabFocusTracker

SETTINGS_FIELDS = ("trackingEnabled", "dailyGoal", "dataRetentionDays", "excludedDomains")


def merge_settings(existing: dict[str, Any], incoming: dict[str, Any]) -> dict[str, Any]:
    """Merge known settings keys; a null value or an empty list drops the key."""
    merged = dict(existing)
    for key in SETTINGS_FIELDS:
        if key not in incoming:
            continue
        value = incoming[key]
        if key == "excludedDomains" and value is not None:
            if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
                raise ValueError("excludedDomains must be a list of strings")
        if value is None or (isinstance(value, list) and not value):
            merged.pop(key, None)
        else:
            merged[key] = value
    return merged


class TrackerContext:
    """Everything the engine owns, built once at startup and handed to the surfaces."""

    def __init__(
        self,
        db: Database,
        tz: ZoneInfo,
        clock: Callable[[], int] = now_ms,
        logger: logging.Logger | None = None,
    ) -> None:
        self.db = db
        self.tz = tz
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)

        self.storage = Storage(db)
        self.locks = KeyedLocks()
        self.scheduler = Scheduler(db, clock=clock)
        self.aggregator = VisitAggregator(self.storage, self.locks, tz, clock=clock)
        self.tracker = TabFocusTracker(self.aggregator, clock=clock)
        self.heartbeat = HeartbeatDedupEngine(self.aggregator, is_tab_tracked=self.tracker.is_tracking)
        self.focus_timer = FocusTimerEngine(self.storage, self.locks, self.scheduler, clock=clock)
        self.settings = Settings()

        self._event_routes = {
            TabActivated: self._on_tab_activated,
            TabUpdated: self._on_tab_updated,
            TabRemoved: self._on_tab_removed,
            WindowFocusChanged: self._on_window_focus_changed,
        }

    async def start(self) -> None:
        await self.reload_settings()
        await self.scheduler.restore()
        await self.focus_timer.restore()

    async def close(self) -> None:
        await self.tracker.stop_all()
        await self.scheduler.shutdown()

    async def handle_event(self, event: BrowserEvent) -> None:
        await self._event_routes[type(event)](event)

    async def _on_tab_activated(self, event: TabActivated) -> None:
        await self.tracker.tab_activated(event.tab_id, event.url)

    async def _on_tab_updated(self, event: TabUpdated) -> None:
        await self.tracker.tab_updated(event.tab_id, event.url, event.status, event.active)

    async def _on_tab_removed(self, event: TabRemoved) -> None:
        await self.tracker.tab_removed(event.tab_id)
        self.heartbeat.forget(event.tab_id)

    async def _on_window_focus_changed(self, event: WindowFocusChanged) -> None:
        await self.tracker.window_focus_changed(event.window_id, event.tab_id, event.url)

    async def reload_settings(self) -> Settings:
        async with self.locks.for_key(SETTINGS_KEY):
            try:
                raw = await self.storage.get(SETTINGS_KEY)
                if raw is None:
                    raw = Settings().to_dict()
                    await self.storage.set(SETTINGS_KEY, raw)
            except StorageFailure:
                self.logger.exception("Could not load settings; using defaults")
                raw = {}
        await self._apply_settings(Settings.from_dict(raw))
        return self.settings

    async def get_settings(self) -> dict[str, Any]:
        try:
            return await self.storage.get(SETTINGS_KEY) or {}
        except StorageFailure:
            self.logger.exception("Could not read settings")
            return {}

    async def save_settings(self, incoming: dict[str, Any]) -> bool:
        async with self.locks.for_key(SETTINGS_KEY):
            try:
                merged = merge_settings(await self.storage.get(SETTINGS_KEY) or {}, incoming)
                settings = Settings.from_dict(merged)
                await self.storage.set(SETTINGS_KEY, merged)
            except StorageFailure:
                self.logger.exception("Could not save settings")
                return False
        await self._apply_settings(settings)
        return True

    async def toggle_tracking(self, enabled: bool) -> None:
        self.logger.info("Tracking %s", "enabled" if enabled else "disabled")
        if not await self.save_settings({"trackingEnabled": enabled}):
            # Keep the in-memory switch authoritative even if it could not be persisted.
            self.settings.tracking_enabled = enabled
            await self._apply_settings(self.settings)

    async def export_data(self) -> str | None:
        try:
            snapshot = await self.storage.snapshot()
        except StorageFailure:
            self.logger.exception("Export failed")
            return None
        return json.dumps(snapshot, indent=2, sort_keys=True)

    async def clear_data(self) -> bool:
        await self.tracker.stop_all()
        try:
            await self.storage.clear()
            await self.scheduler.cancel(ALARM_NAME)
        except StorageFailure:
            self.logger.exception("Clear failed")
            return False
        self.logger.info("Cleared all stored usage data")
        await self.reload_settings()
        return True

    async def _apply_settings(self, settings: Settings) -> None:
        self.settings = settings
        self.tracker.excluded_domains = settings.excluded_domains
        self.heartbeat.configure(enabled=settings.tracking_enabled, excluded_domains=settings.excluded_domains)
        await self.tracker.set_enabled(settings.tracking_enabled)
