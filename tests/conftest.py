"""Shared pytest fixtures."""

from datetime import datetime, timedelta

import pytest

from clinic_queue.engine import QueueEngine
from clinic_queue.queue_store.database import get_connection
from clinic_queue.state_machine import Status, is_pinned


class FakeClock:
    """Deterministic clock; every registration helper call moves it forward."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)

    def set(self, hour: int, minute: int = 0) -> None:
        self.now = self.now.replace(hour=hour, minute=minute, second=0, microsecond=0)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "clinic_queue.db"


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 10, 19, 9, 0))


@pytest.fixture
def engine(db_path, clock):
    """Engine on a fresh database per test."""
    return QueueEngine(db_path=db_path, clock=clock, lock_timeout=5.0, retry_backoff=0.01)


@pytest.fixture
def register(engine, clock):
    """Register an entry one minute after the previous one. Returns its id."""
    def _register(name: str, entry_type: str = "GENERAL_PATIENT", **extra) -> str:
        clock.advance(minutes=1)
        draft = {"name": name, "age": 40, "gender": "Male", "city": "Pune", "type": entry_type}
        draft.update(extra)
        return engine.create_entry(draft).id
    return _register


@pytest.fixture
def positions(engine):
    """Map of entry name to sort position for today."""
    def _positions() -> dict[str, int]:
        return {e.name: e.sort_position for e in engine.get_entries()}
    return _positions


def assert_queue_invariants(engine: QueueEngine, day: str | None = None) -> None:
    """Check dense positions, pinned/out_time rules and unique queue numbers."""
    entries = engine.get_entries(day)
    pool = sorted(
        e.sort_position for e in entries
        if e.status == Status.WAITING and not is_pinned(e.type)
    )
    assert pool == list(range(1, len(pool) + 1))

    for e in entries:
        if e.status != Status.WAITING or is_pinned(e.type):
            assert e.sort_position == 0, e
        assert (e.out_time is not None) == (e.status == Status.COMPLETED), e

    numbers = [e.queue_number for e in entries if e.queue_number]
    assert len(numbers) == len(set(numbers))


@pytest.fixture
def check_invariants(engine):
    return lambda day=None: assert_queue_invariants(engine, day)


@pytest.fixture
def raw_connection(db_path, engine):
    """Direct database connection for setup and assertions."""
    conn = get_connection(db_path)
    yield conn
    conn.close()
