import pytest

from usage_tracker.db import Database


class FakeClock:
    """Millisecond wall clock that only moves when told to."""

    def __init__(self, start: int) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    # 2026-02-01T10:00:00Z
    return FakeClock(1_769_940_000_000)


@pytest.fixture
def db():
    database = Database(":memory:")
    database.initialize()
    yield database
    database.close()
