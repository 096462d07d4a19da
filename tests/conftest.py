"""Shared fixtures: file-backed SQLite per test and a controllable clock."""
from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone

import pytest

from matchmaker.infrastructure.persistence.session import (
    create_schema,
    make_engine,
    make_session_factory,
)
from matchmaker.lifecycle.ledger import CapacityLedger
from matchmaker.lifecycle.manager import RequestLifecycleManager
from matchmaker.lifecycle.uow import sqlalchemy_uow_factory


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self._wall = start or datetime(2025, 1, 1, tzinfo=timezone.utc)
        self._mono = 0.0
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._wall

    def monotonic(self) -> float:
        with self._lock:
            return self._mono

    def advance(self, seconds: float) -> None:
        with self._lock:
            self._wall += timedelta(seconds=seconds)
            self._mono += seconds


@pytest.fixture()
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'matchmaker.db'}")
    create_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture()
def uow_factory(session_factory):
    return sqlalchemy_uow_factory(session_factory)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def manager(uow_factory, clock) -> RequestLifecycleManager:
    return RequestLifecycleManager(
        uow_factory=uow_factory,
        clock=clock,
        cooldown_days=14,
        max_retries=5,
        retry_backoff_seconds=0.01,
    )


def seed_supervisor(session_factory, supervisor_id: str, total_spots: int, available_spots: int | None = None) -> None:
    with session_factory.begin() as session:
        CapacityLedger(session).register(supervisor_id, total_spots, available_spots)


@pytest.fixture()
def seed(session_factory):
    def _seed(supervisor_id: str, total_spots: int, available_spots: int | None = None) -> None:
        seed_supervisor(session_factory, supervisor_id, total_spots, available_spots)

    return _seed
