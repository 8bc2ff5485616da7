from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from .aggregator import VisitAggregator
from .classifier import classify, is_excluded
from .models import HeartbeatSession

# Cadence the page side uses: a ping every 10s while visible and active within 30s.
HEARTBEAT_INTERVAL_MS = 10_000
IDLE_THRESHOLD_MS = 30_000

MIN_DELTA_MS = 5_000
MAX_DELTA_MS = 60_000


def clamp_delta(delta: int) -> int:
    return max(0, min(delta, MAX_DELTA_MS))


class HeartbeatDedupEngine:
    """Turns page liveness pings into bounded time increments.

    The first ping for a tab, or the first after its address changes, only sets
    the baseline. Later pings commit the gap since the previous ping when it is
    at least MIN_DELTA_MS, capped at MAX_DELTA_MS.
    """

    def __init__(
        self,
        aggregator: VisitAggregator,
        is_tab_tracked: Callable[[int], bool] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.aggregator = aggregator
        self.is_tab_tracked = is_tab_tracked
        self.logger = logger or logging.getLogger(__name__)
        self.enabled = True
        self.excluded_domains: tuple[str, ...] = ()
        self._sessions: dict[int, HeartbeatSession] = {}

    def configure(self, *, enabled: bool, excluded_domains: Iterable[str]) -> None:
        self.enabled = enabled
        self.excluded_domains = tuple(excluded_domains)
        if not enabled:
            self._sessions.clear()

    def session_for(self, tab_id: int) -> HeartbeatSession | None:
        return self._sessions.get(tab_id)

    def forget(self, tab_id: int) -> None:
        self._sessions.pop(tab_id, None)

    async def handle(self, tab_id: int | None, url: str, timestamp: int) -> bool:
        if tab_id is None:
            return False

        domain = classify(url)
        if not self.enabled or is_excluded(domain, self.excluded_domains):
            # Time spent here must not count once pings are accepted again.
            self.forget(tab_id)
            return False

        previous = self._sessions.get(tab_id)
        self._sessions[tab_id] = HeartbeatSession(tab_id=tab_id, last_timestamp=timestamp, url=url)
        if previous is None or previous.url != url:
            return True

        delta = clamp_delta(timestamp - previous.last_timestamp)
        if delta < MIN_DELTA_MS:
            return True

        if self.is_tab_tracked is not None and self.is_tab_tracked(tab_id):
            # The focus tracker already times this interval and commits it on stop.
            self.logger.debug("Heartbeat %sms on tab %s covered by focus tracking", delta, tab_id)
            return True

        await self.aggregator.commit(domain, delta, url)
        return True
