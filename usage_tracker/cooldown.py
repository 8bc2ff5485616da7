from __future__ import annotations


def parse_epoch_ms(value: str | None) -> int | None:
    """Parse a stored epoch-milliseconds marker; missing or garbled markers read as never."""
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def remaining_cooldown_ms(last_run_ms: str | None, cooldown_seconds: int, now: int) -> int:
    """Return how long /report-now stays locked, in milliseconds."""
    if cooldown_seconds <= 0:
        return 0

    last_run = parse_epoch_ms(last_run_ms)
    if last_run is None:
        return 0

    elapsed = max(0, now - last_run)
    return max(0, cooldown_seconds * 1000 - elapsed)
