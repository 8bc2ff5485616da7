from __future__ import annotations

import logging
from collections.abc import Callable

from .aggregator import VisitAggregator
from .classifier import classify, is_excluded
from .clock import now_ms
from .models import TrackingSession

MIN_VISIT_MS = 1000
WINDOW_ID_NONE = -1


class TabFocusTracker:
    """Times the single tab the user is looking at.

    States are Idle (no session) and Tracking(tab_id). Every transition into
    Tracking first stops whatever session is live, so at most one exists.
    """

    def __init__(
        self,
        aggregator: VisitAggregator,
        clock: Callable[[], int] = now_ms,
        logger: logging.Logger | None = None,
    ) -> None:
        self.aggregator = aggregator
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)
        self.enabled = True
        self.excluded_domains: tuple[str, ...] = ()
        self._session: TrackingSession | None = None

    @property
    def session(self) -> TrackingSession | None:
        return self._session

    def is_tracking(self, tab_id: int) -> bool:
        return self._session is not None and self._session.tab_id == tab_id

    async def tab_activated(self, tab_id: int, url: str | None) -> None:
        await self.stop_all()
        await self.start(tab_id, url)

    async def tab_updated(self, tab_id: int, url: str | None, status: str | None, active: bool = False) -> None:
        # Only a finished navigation moves the session, and only for the tab in front.
        if status != "complete" or not url:
            return
        if not (active or self.is_tracking(tab_id)):
            return
        await self.stop_all()
        await self.start(tab_id, url)

    async def tab_removed(self, tab_id: int) -> None:
        await self.stop(tab_id)

    async def window_focus_changed(
        self,
        window_id: int,
        tab_id: int | None = None,
        url: str | None = None,
    ) -> None:
        if window_id == WINDOW_ID_NONE:
            await self.stop_all()
            return
        if tab_id is None:
            return
        await self.stop_all()
        await self.start(tab_id, url)

    async def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled
        if not enabled:
            await self.stop_all()

    async def start(self, tab_id: int, url: str | None) -> bool:
        if not self.enabled or not url:
            return False

        domain = classify(url)
        if is_excluded(domain, self.excluded_domains):
            self.logger.debug("Not tracking excluded domain %s (tab %s)", domain, tab_id)
            return False

        now = self.clock()
        previous = self._session
        self._session = TrackingSession(tab_id=tab_id, url=url, domain=domain, start_time=now, last_update=now)
        self.logger.debug("Tracking tab %s on %s", tab_id, domain)
        if previous is not None:
            await self._finish(previous, now)
        return True

    async def stop(self, tab_id: int) -> int:
        session = self._session
        if session is None or session.tab_id != tab_id:
            return 0

        # Detach before awaiting the commit so a start arriving meanwhile supersedes this one.
        self._session = None
        return await self._finish(session, self.clock())

    async def _finish(self, session: TrackingSession, ended: int) -> int:
        duration = ended - session.start_time
        if duration <= MIN_VISIT_MS:
            self.logger.debug("Discarding %sms flicker on %s", duration, session.domain)
            return 0

        await self.aggregator.commit(session.domain, duration, session.url)
        return duration

    async def stop_all(self) -> None:
        if self._session is not None:
            await self.stop(self._session.tab_id)
