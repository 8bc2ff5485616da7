"""Work/break countdown that survives process suspension.

The stored state never holds a ticking counter. While running it holds the
remaining time as of ``last_updated``; the live value is derived from the wall
clock on every read, and the end of the segment is a persisted scheduler alarm.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import Any

from .clock import now_ms
from .errors import StorageFailure
from .locks import KeyedLocks
from .models import BREAK_MODE, WORK_MODE, FocusTimerState
from .scheduler import Scheduler
from .storage import FOCUS_TIMER_KEY, Storage

ALARM_NAME = "focus-timer-end"

# Wake-ups may land slightly early relative to our clock; anything further out is stale.
EXPIRY_TOLERANCE_MS = 1000

SETTING_FIELDS = {
    "workMs": "work_ms",
    "breakMs": "break_ms",
    "longBreakMs": "long_break_ms",
    "sessionsBeforeLong": "sessions_before_long",
}

TransitionListener = Callable[[FocusTimerState], Awaitable[None]]


def next_segment(state: FocusTimerState) -> FocusTimerState:
    """Return the state for the segment that follows a finished one."""
    if state.mode == WORK_MODE:
        completed = state.sessions_completed + 1
        every = state.sessions_before_long if state.sessions_before_long > 0 else 1
        use_long = completed % every == 0
        return replace(
            state,
            mode=BREAK_MODE,
            sessions_completed=completed,
            remaining_ms=state.long_break_ms if use_long else state.break_ms,
        )
    return replace(state, mode=WORK_MODE, remaining_ms=state.work_ms)


def apply_settings(state: FocusTimerState, patch: dict[str, Any] | None) -> FocusTimerState:
    if not patch:
        return state
    changes: dict[str, int] = {}
    for wire_name, field_name in SETTING_FIELDS.items():
        if wire_name not in patch or patch[wire_name] is None:
            continue
        value = int(patch[wire_name])
        if value <= 0:
            raise ValueError(f"{wire_name} must be positive")
        changes[field_name] = value
    return replace(state, **changes)


class FocusTimerEngine:
    def __init__(
        self,
        storage: Storage,
        locks: KeyedLocks,
        scheduler: Scheduler,
        clock: Callable[[], int] = now_ms,
        logger: logging.Logger | None = None,
    ) -> None:
        self.storage = storage
        self.locks = locks
        self.scheduler = scheduler
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)
        self._listeners: list[TransitionListener] = []
        scheduler.register(ALARM_NAME, self.on_expiry)

    def add_listener(self, listener: TransitionListener) -> None:
        self._listeners.append(listener)

    async def get(self) -> FocusTimerState:
        state = await self._load()
        return self._with_live_remaining(state)

    async def start(
        self,
        remaining_override: int | None = None,
        settings: dict[str, Any] | None = None,
    ) -> FocusTimerState:
        async with self.locks.for_key(FOCUS_TIMER_KEY):
            state = apply_settings(await self._load(), settings)
            now = self.clock()
            remaining = state.live_remaining(now) if remaining_override is None else max(0, int(remaining_override))
            state = replace(state, is_running=True, remaining_ms=remaining, last_updated=now)
            await self._save(state)
            await self.scheduler.schedule_at(ALARM_NAME, now + remaining)

        self.logger.info("Focus timer started: mode=%s remaining=%sms", state.mode, remaining)
        return self._with_live_remaining(state)

    async def pause(self) -> FocusTimerState:
        async with self.locks.for_key(FOCUS_TIMER_KEY):
            state = await self._load()
            now = self.clock()
            state = replace(state, is_running=False, remaining_ms=state.live_remaining(now), last_updated=now)
            await self._save(state)
            await self.scheduler.cancel(ALARM_NAME)

        self.logger.info("Focus timer paused with %sms left", state.remaining_ms)
        return state

    async def reset(self) -> FocusTimerState:
        async with self.locks.for_key(FOCUS_TIMER_KEY):
            state = await self._load()
            state = replace(
                state,
                mode=WORK_MODE,
                is_running=False,
                remaining_ms=state.work_ms,
                sessions_completed=0,
                last_updated=self.clock(),
            )
            await self._save(state)
            await self.scheduler.cancel(ALARM_NAME)

        self.logger.info("Focus timer reset")
        return state

    async def update_settings(self, patch: dict[str, Any] | None) -> FocusTimerState:
        async with self.locks.for_key(FOCUS_TIMER_KEY):
            state = apply_settings(await self._load(), patch)
            await self._save(state)
        return self._with_live_remaining(state)

    async def on_expiry(self) -> None:
        async with self.locks.for_key(FOCUS_TIMER_KEY):
            state = await self._load()
            now = self.clock()
            if not state.is_running:
                self.logger.debug("Ignoring wake-up for a stopped focus timer")
                return

            remaining = state.live_remaining(now)
            if remaining > EXPIRY_TOLERANCE_MS:
                # A wake-up armed for an earlier segment; point the alarm at the real end.
                await self.scheduler.schedule_at(ALARM_NAME, now + remaining)
                return

            state = replace(next_segment(state), is_running=True, last_updated=now)
            await self._save(state)
            await self.scheduler.schedule_at(ALARM_NAME, now + state.remaining_ms)

        self.logger.info(
            "Focus timer switched to %s for %sms (sessions completed: %s)",
            state.mode,
            state.remaining_ms,
            state.sessions_completed,
        )
        for listener in self._listeners:
            try:
                await listener(state)
            except Exception:
                self.logger.exception("Focus timer listener failed")

    async def restore(self) -> None:
        """Re-arm the end-of-segment alarm for a timer that was running at shutdown."""
        try:
            state = await self._load()
        except StorageFailure:
            self.logger.exception("Could not restore focus timer state")
            return
        if not state.is_running or self.scheduler.pending(ALARM_NAME) is not None:
            return
        await self.scheduler.schedule_at(ALARM_NAME, state.last_updated + state.remaining_ms)

    async def _load(self) -> FocusTimerState:
        raw = await self.storage.get(FOCUS_TIMER_KEY)
        if raw is None:
            return FocusTimerState(last_updated=self.clock())
        return FocusTimerState.from_dict(raw)

    async def _save(self, state: FocusTimerState) -> None:
        await self.storage.set(FOCUS_TIMER_KEY, state.to_dict())

    def _with_live_remaining(self, state: FocusTimerState) -> FocusTimerState:
        return replace(state, remaining_ms=state.live_remaining(self.clock()))
