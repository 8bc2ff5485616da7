from __future__ import annotations

import logging
from typing import Any

from .engine import TrackerContext
from .errors import InvalidRequest, StorageFailure
from .messages import (
    ClearData,
    ExportData,
    FocusTimerGet,
    FocusTimerPause,
    FocusTimerReset,
    FocusTimerStart,
    FocusTimerUpdateSettings,
    GetDailyStats,
    GetSettings,
    GetStatistics,
    GetWeekSummary,
    PageEvent,
    Request,
    SaveSettings,
    ToggleTracking,
    parse_request,
)

WEEK_DAYS = 7


class Dispatcher:
    """Routes validated requests to the tracker context through a fixed table."""

    def __init__(self, context: TrackerContext, logger: logging.Logger | None = None) -> None:
        self.context = context
        self.logger = logger or logging.getLogger(__name__)
        self._routes = {
            GetDailyStats: self._get_daily_stats,
            GetWeekSummary: self._get_week_summary,
            GetStatistics: self._get_statistics,
            ToggleTracking: self._toggle_tracking,
            GetSettings: self._get_settings,
            SaveSettings: self._save_settings,
            PageEvent: self._page_event,
            FocusTimerGet: self._focus_get,
            FocusTimerStart: self._focus_start,
            FocusTimerPause: self._focus_pause,
            FocusTimerReset: self._focus_reset,
            FocusTimerUpdateSettings: self._focus_update_settings,
            ExportData: self._export_data,
            ClearData: self._clear_data,
        }

    async def handle(self, payload: Any) -> Any:
        try:
            request = parse_request(payload)
        except InvalidRequest as exc:
            self.logger.debug("Rejected request: %s", exc)
            return {"ok": False, "error": str(exc)}
        return await self.dispatch(request)

    async def dispatch(self, request: Request) -> Any:
        handler = self._routes[type(request)]
        try:
            return await handler(request)
        except StorageFailure as exc:
            self.logger.exception("%s abandoned after storage failure", type(request).__name__)
            return {"ok": False, "error": str(exc)}
        except (TypeError, ValueError) as exc:
            self.logger.debug("Rejected %s: %s", type(request).__name__, exc)
            return {"ok": False, "error": str(exc)}

    async def _get_daily_stats(self, request: GetDailyStats) -> dict[str, Any]:
        records = await self.context.aggregator.get_daily_stats(request.date)
        return {domain: record.to_dict() for domain, record in records.items()}

    async def _get_week_summary(self, request: GetWeekSummary) -> dict[str, Any]:
        totals = await self.context.aggregator.get_range_totals(request.date, WEEK_DAYS)
        total_time = sum(total for _, total in totals)
        return {
            "days": [{"date": day, "totalTime": total} for day, total in totals],
            "totalTime": total_time,
            "averageTime": total_time // WEEK_DAYS,
        }

    async def _get_statistics(self, request: GetStatistics) -> dict[str, Any]:
        stats = await self.context.aggregator.get_statistics()
        return stats.to_dict()

    async def _toggle_tracking(self, request: ToggleTracking) -> dict[str, Any]:
        await self.context.toggle_tracking(request.enabled)
        return {"success": True}

    async def _get_settings(self, request: GetSettings) -> dict[str, Any]:
        return {"settings": await self.context.get_settings()}

    async def _save_settings(self, request: SaveSettings) -> dict[str, Any]:
        return {"success": await self.context.save_settings(request.settings)}

    async def _page_event(self, request: PageEvent) -> dict[str, Any]:
        ok = await self.context.heartbeat.handle(request.tab_id, request.url, request.timestamp)
        return {"ok": ok}

    async def _focus_get(self, request: FocusTimerGet) -> dict[str, Any]:
        state = await self.context.focus_timer.get()
        return {"state": state.to_dict()}

    async def _focus_start(self, request: FocusTimerStart) -> dict[str, Any]:
        state = await self.context.focus_timer.start(request.remaining_ms, request.settings)
        return {"state": state.to_dict()}

    async def _focus_pause(self, request: FocusTimerPause) -> dict[str, Any]:
        state = await self.context.focus_timer.pause()
        return {"state": state.to_dict()}

    async def _focus_reset(self, request: FocusTimerReset) -> dict[str, Any]:
        state = await self.context.focus_timer.reset()
        return {"state": state.to_dict()}

    async def _focus_update_settings(self, request: FocusTimerUpdateSettings) -> dict[str, Any]:
        state = await self.context.focus_timer.update_settings(request.settings)
        return {"state": state.to_dict()}

    async def _export_data(self, request: ExportData) -> str | None:
        return await self.context.export_data()

    async def _clear_data(self, request: ClearData) -> dict[str, Any]:
        return {"success": await self.context.clear_data()}
