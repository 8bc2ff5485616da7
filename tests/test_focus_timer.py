import asyncio

from usage_tracker.focus_timer import ALARM_NAME, FocusTimerEngine, apply_settings, next_segment
from usage_tracker.locks import KeyedLocks
from usage_tracker.models import BREAK_MODE, WORK_MODE, FocusTimerState
from usage_tracker.scheduler import Scheduler
from usage_tracker.storage import Storage

MINUTE = 60_000


def make_engine(db, clock) -> FocusTimerEngine:
    scheduler = Scheduler(db, clock=clock, max_sleep_seconds=0.01)
    return FocusTimerEngine(Storage(db), KeyedLocks(), scheduler, clock=clock)


def test_running_timer_derives_remaining_from_wall_clock(db, clock) -> None:
    engine = make_engine(db, clock)

    async def scenario():
        started = await engine.start(remaining_override=10 * MINUTE)
        clock.advance(4 * MINUTE)
        live = await engine.get()
        await engine.scheduler.shutdown()
        return started, live

    started, live = asyncio.run(scenario())

    assert started.is_running is True
    assert started.remaining_ms == 10 * MINUTE
    assert live.remaining_ms == 6 * MINUTE


def test_start_arms_alarm_and_pause_cancels_it(db, clock) -> None:
    engine = make_engine(db, clock)

    async def scenario():
        await engine.start()
        armed = engine.scheduler.pending(ALARM_NAME)
        clock.advance(5 * MINUTE)
        paused = await engine.pause()
        clock.advance(30 * MINUTE)
        later = await engine.get()
        return armed, paused, later, db.list_alarms()

    armed, paused, later, alarms = asyncio.run(scenario())

    assert armed == clock.now - 35 * MINUTE + 25 * MINUTE
    assert paused.is_running is False
    assert paused.remaining_ms == 20 * MINUTE
    assert later.remaining_ms == 20 * MINUTE
    assert alarms == []


def test_resume_continues_from_paused_remaining(db, clock) -> None:
    engine = make_engine(db, clock)

    async def scenario():
        await engine.start()
        clock.advance(10 * MINUTE)
        await engine.pause()
        clock.advance(60 * MINUTE)
        resumed = await engine.start()
        alarm = engine.scheduler.pending(ALARM_NAME)
        await engine.scheduler.shutdown()
        return resumed, alarm

    resumed, alarm = asyncio.run(scenario())

    assert resumed.remaining_ms == 15 * MINUTE
    assert alarm == clock.now + 15 * MINUTE


def test_expiry_cycles_work_and_break_with_long_break_every_fourth(db, clock) -> None:
    engine = make_engine(db, clock)
    modes = []

    async def scenario():
        state = await engine.start()
        for _ in range(8):
            clock.advance(state.remaining_ms)
            await engine.on_expiry()
            state = await engine.get()
            modes.append((state.mode, state.remaining_ms, state.sessions_completed))
        await engine.scheduler.shutdown()

    asyncio.run(scenario())

    assert modes == [
        (BREAK_MODE, 5 * MINUTE, 1),
        (WORK_MODE, 25 * MINUTE, 1),
        (BREAK_MODE, 5 * MINUTE, 2),
        (WORK_MODE, 25 * MINUTE, 2),
        (BREAK_MODE, 5 * MINUTE, 3),
        (WORK_MODE, 25 * MINUTE, 3),
        (BREAK_MODE, 15 * MINUTE, 4),
        (WORK_MODE, 25 * MINUTE, 4),
    ]


def test_stale_or_stopped_wakeups_do_not_transition(db, clock) -> None:
    engine = make_engine(db, clock)

    async def scenario():
        await engine.on_expiry()
        idle = await engine.get()

        await engine.start()
        clock.advance(MINUTE)
        await engine.on_expiry()
        running = await engine.get()
        alarm = engine.scheduler.pending(ALARM_NAME)
        await engine.scheduler.shutdown()
        return idle, running, alarm

    idle, running, alarm = asyncio.run(scenario())

    assert idle.is_running is False
    assert idle.mode == WORK_MODE
    assert running.mode == WORK_MODE
    assert running.remaining_ms == 24 * MINUTE
    assert alarm == clock.now + 24 * MINUTE


def test_scheduler_fires_expiry_after_wall_clock_passes_end(db, clock) -> None:
    engine = make_engine(db, clock)
    transitions = []

    async def record(state):
        transitions.append(state.mode)

    engine.add_listener(record)

    async def scenario():
        await engine.start(remaining_override=2000)
        clock.advance(2500)
        for _ in range(100):
            if transitions:
                break
            await asyncio.sleep(0.01)
        state = await engine.get()
        await engine.scheduler.shutdown()
        return state

    state = asyncio.run(scenario())

    assert transitions == [BREAK_MODE]
    assert state.mode == BREAK_MODE
    assert state.is_running is True
    assert state.remaining_ms == 5 * MINUTE


def test_reset_keeps_configured_durations(db, clock) -> None:
    engine = make_engine(db, clock)

    async def scenario():
        await engine.update_settings({"workMs": 50 * MINUTE, "breakMs": 10 * MINUTE})
        await engine.start()
        clock.advance(50 * MINUTE)
        await engine.on_expiry()
        state = await engine.reset()
        return state, db.list_alarms()

    state, alarms = asyncio.run(scenario())

    assert state.mode == WORK_MODE
    assert state.is_running is False
    assert state.remaining_ms == 50 * MINUTE
    assert state.sessions_completed == 0
    assert state.break_ms == 10 * MINUTE
    assert alarms == []


def test_update_settings_leaves_running_countdown_alone(db, clock) -> None:
    engine = make_engine(db, clock)

    async def scenario():
        await engine.start()
        clock.advance(5 * MINUTE)
        state = await engine.update_settings({"workMs": 45 * MINUTE, "sessionsBeforeLong": 2})
        await engine.scheduler.shutdown()
        return state

    state = asyncio.run(scenario())

    assert state.is_running is True
    assert state.remaining_ms == 20 * MINUTE
    assert state.work_ms == 45 * MINUTE
    assert state.sessions_before_long == 2


def test_restore_rearms_alarm_for_running_timer(db, clock) -> None:
    first = make_engine(db, clock)

    async def before_restart():
        await first.start()
        await first.scheduler.shutdown()

    asyncio.run(before_restart())
    db.delete_alarm(ALARM_NAME)

    second = make_engine(db, clock)

    async def after_restart():
        await second.restore()
        alarm = second.scheduler.pending(ALARM_NAME)
        await second.scheduler.shutdown()
        return alarm

    assert asyncio.run(after_restart()) == clock.now + 25 * MINUTE


def test_pure_helpers() -> None:
    state = FocusTimerState(mode=WORK_MODE, sessions_completed=1, sessions_before_long=2)
    assert next_segment(state).remaining_ms == state.long_break_ms
    assert next_segment(FocusTimerState(mode=BREAK_MODE)).remaining_ms == state.work_ms

    patched = apply_settings(state, {"breakMs": 1000, "unknown": 5})
    assert patched.break_ms == 1000
    assert patched.mode == WORK_MODE
