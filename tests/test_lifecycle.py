from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest
from freezegun import freeze_time
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from matchmaker.domain.errors import (
    CapacityExceededError,
    DuplicateRequestError,
    InvalidStateTransitionError,
    MultipleAcceptanceError,
    RequestCooldownError,
    RequestNotFoundError,
    SelfSupervisionError,
    SupervisorNotFoundError,
    ValidationError,
)
from matchmaker.domain.states import RequestState
from matchmaker.infrastructure.persistence.models import CapacityReservationModel, RequestEventModel, SupervisorModel
from matchmaker.lifecycle.events import derive_event_id
from matchmaker.lifecycle.manager import RequestLifecycleManager
from matchmaker.lifecycle.uow import UnitOfWorkError, sqlalchemy_uow_factory


def _capacity(session_factory, supervisor_id: str) -> tuple[int, int]:
    with session_factory() as session:
        row = session.get(SupervisorModel, supervisor_id)
        return row.available_spots, row.total_spots


def _reservations(session_factory) -> int:
    with session_factory() as session:
        return len(session.execute(select(CapacityReservationModel)).scalars().all())


def test_create_then_duplicate_is_rejected(manager: RequestLifecycleManager, seed) -> None:
    seed("sup-1", 2)
    result = manager.create("stu-1", "sup-1")
    assert result.request.state is RequestState.PENDING
    assert result.capacity_delta == 0

    with pytest.raises(DuplicateRequestError):
        manager.create("stu-1", "sup-1")
    assert manager.count_pending(supervisor_id="sup-1") == 1


def test_create_guards(manager: RequestLifecycleManager, seed) -> None:
    seed("sup-1", 1)
    with pytest.raises(SupervisorNotFoundError):
        manager.create("stu-1", "ghost")
    with pytest.raises(SelfSupervisionError):
        manager.create("sup-1", "sup-1")
    with pytest.raises(ValidationError):
        manager.create(" ", "sup-1")


@pytest.mark.parametrize("total_spots", [1, 2])
def test_full_supervisor_keeps_request_pending(
    manager: RequestLifecycleManager, session_factory, seed, total_spots: int
) -> None:
    seed("sup-full", total_spots, available_spots=0)
    request = manager.create("stu-1", "sup-full").request

    with pytest.raises(CapacityExceededError):
        manager.accept(request.id)

    assert manager.get(request.id).state is RequestState.PENDING
    available, total = _capacity(session_factory, "sup-full")
    assert (available, total) == (0, total_spots)
    assert 0 <= available <= total
    assert _reservations(session_factory) == 0
    assert [event.event_type for event in manager.history(request.id)] == ["SupervisionRequestCreated"]


def test_accept_reserves_and_withdraw_releases(manager: RequestLifecycleManager, session_factory, seed) -> None:
    seed("sup-1", 2)
    request = manager.create("stu-1", "sup-1").request

    accepted = manager.accept(request.id)
    assert accepted.request.state is RequestState.ACCEPTED
    assert accepted.capacity_delta == -1
    assert _capacity(session_factory, "sup-1") == (1, 2)

    withdrawn = manager.withdraw(request.id)
    assert withdrawn.request.state is RequestState.WITHDRAWN
    assert withdrawn.capacity_delta == 1
    assert _capacity(session_factory, "sup-1") == (2, 2)

    with pytest.raises(InvalidStateTransitionError) as excinfo:
        manager.withdraw(request.id)
    assert excinfo.value.current == "WITHDRAWN"
    assert _capacity(session_factory, "sup-1") == (2, 2)
    assert _reservations(session_factory) == 0


def test_terminal_states_reject_further_commands(manager: RequestLifecycleManager, seed) -> None:
    seed("sup-1", 2)
    request = manager.create("stu-1", "sup-1").request
    manager.reject(request.id)

    for command in (manager.accept, manager.reject, manager.withdraw):
        with pytest.raises(InvalidStateTransitionError):
            command(request.id)

    accepted = manager.create("stu-2", "sup-1").request
    manager.accept(accepted.id)
    with pytest.raises(InvalidStateTransitionError):
        manager.reject(accepted.id)
    with pytest.raises(InvalidStateTransitionError):
        manager.accept(accepted.id)


def test_unknown_request(manager: RequestLifecycleManager) -> None:
    with pytest.raises(RequestNotFoundError):
        manager.accept("missing")
    with pytest.raises(RequestNotFoundError):
        manager.get("missing")


def test_accept_auto_withdraws_other_pending(manager: RequestLifecycleManager, session_factory, clock, seed) -> None:
    for supervisor in ("sup-1", "sup-2", "sup-3"):
        seed(supervisor, 1)
    first = manager.create("stu-1", "sup-1").request
    second = manager.create("stu-1", "sup-2").request
    third = manager.create("stu-1", "sup-3").request
    clock.advance(60)

    result = manager.accept(second.id)

    assert set(result.auto_withdrawn) == {first.id, third.id}
    states = {row.id: row.state for row in manager.list_requests(student_id="stu-1")}
    assert states == {
        first.id: RequestState.WITHDRAWN,
        second.id: RequestState.ACCEPTED,
        third.id: RequestState.WITHDRAWN,
    }
    assert _capacity(session_factory, "sup-1") == (1, 1)
    assert _capacity(session_factory, "sup-3") == (1, 1)
    assert manager.history(first.id)[-1].event_type == "SupervisionRequestAutoWithdrawn"


def test_auto_withdraw_can_be_disabled(uow_factory, clock, seed) -> None:
    manager = RequestLifecycleManager(uow_factory=uow_factory, clock=clock, auto_withdraw_on_accept=False)
    seed("sup-1", 1)
    seed("sup-2", 1)
    kept = manager.create("stu-1", "sup-1").request
    chosen = manager.create("stu-1", "sup-2").request

    assert manager.accept(chosen.id).auto_withdrawn == ()
    assert manager.get(kept.id).state is RequestState.PENDING
    with pytest.raises(MultipleAcceptanceError):
        manager.accept(kept.id)


def test_invite_creates_accepted_request(manager: RequestLifecycleManager, session_factory, seed) -> None:
    seed("sup-1", 1)
    seed("sup-2", 1)
    pending = manager.create("stu-1", "sup-1").request

    result = manager.invite("sup-2", "stu-1")

    assert result.request.state is RequestState.ACCEPTED
    assert result.auto_withdrawn == (pending.id,)
    assert _capacity(session_factory, "sup-2") == (0, 1)
    with pytest.raises(MultipleAcceptanceError):
        manager.invite("sup-1", "stu-1")
    with pytest.raises(CapacityExceededError):
        manager.invite("sup-2", "stu-2")


def test_cooldown_after_rejection(uow_factory, seed) -> None:
    seed("sup-1", 1)
    with freeze_time("2025-03-01 09:00:00") as frozen:
        manager = RequestLifecycleManager(uow_factory=uow_factory, cooldown_days=14)
        request = manager.create("stu-1", "sup-1").request
        manager.reject(request.id)

        frozen.tick(timedelta(days=13))
        with pytest.raises(RequestCooldownError):
            manager.create("stu-1", "sup-1")

        frozen.tick(timedelta(days=2))
        again = manager.create("stu-1", "sup-1")
        assert again.request.state is RequestState.PENDING


def test_zero_cooldown_allows_immediate_retry(uow_factory, clock, seed) -> None:
    seed("sup-1", 1)
    manager = RequestLifecycleManager(uow_factory=uow_factory, clock=clock, cooldown_days=0)
    request = manager.create("stu-1", "sup-1").request
    manager.withdraw(request.id)
    assert manager.create("stu-1", "sup-1").request.id != request.id


def test_events_recorded_with_capacity_deltas(manager: RequestLifecycleManager, session_factory, seed) -> None:
    seed("sup-1", 1)
    request = manager.create("stu-1", "sup-1").request
    manager.accept(request.id)
    manager.withdraw(request.id)

    with session_factory() as session:
        rows = session.execute(
            select(RequestEventModel).where(RequestEventModel.request_id == request.id)
        ).scalars().all()
    by_type = {row.event_type: row for row in rows}
    assert {name: row.capacity_delta for name, row in by_type.items()} == {
        "SupervisionRequestCreated": 0,
        "SupervisionRequestAccepted": -1,
        "SupervisionRequestWithdrawn": 1,
    }
    assert by_type["SupervisionRequestAccepted"].event_id == derive_event_id(request.id, "SupervisionRequestAccepted")


def test_concurrent_accepts_on_last_spot(manager: RequestLifecycleManager, session_factory, seed) -> None:
    seed("sup-1", 1)
    ids = [manager.create(f"stu-{n}", "sup-1").request.id for n in range(6)]

    def attempt(request_id: str) -> str:
        try:
            manager.accept(request_id)
            return "ok"
        except CapacityExceededError:
            return "full"

    with ThreadPoolExecutor(max_workers=6) as pool:
        outcomes = list(pool.map(attempt, ids))

    assert outcomes.count("ok") == 1
    assert outcomes.count("full") == 5
    assert _capacity(session_factory, "sup-1") == (0, 1)
    assert len(manager.list_requests(supervisor_id="sup-1", state=RequestState.ACCEPTED)) == 1
    assert _reservations(session_factory) == 1


def test_concurrent_accepts_of_same_request(manager: RequestLifecycleManager, session_factory, seed) -> None:
    seed("sup-1", 3)
    request_id = manager.create("stu-1", "sup-1").request.id

    def attempt(_: int) -> str:
        try:
            manager.accept(request_id)
            return "ok"
        except (InvalidStateTransitionError, MultipleAcceptanceError):
            return "stale"

    with ThreadPoolExecutor(max_workers=4) as pool:
        outcomes = list(pool.map(attempt, range(4)))

    assert outcomes.count("ok") == 1
    assert _capacity(session_factory, "sup-1") == (2, 3)


def test_operational_errors_are_retried(session_factory, seed) -> None:
    seed("sup-1", 1)
    real_factory = sqlalchemy_uow_factory(session_factory)
    calls = {"n": 0}
    delays: list[float] = []

    def flaky_factory():
        calls["n"] += 1
        if calls["n"] == 1:
            raise UnitOfWorkError("COMMIT_FAILED") from OperationalError("COMMIT", {}, Exception("database is locked"))
        return real_factory()

    manager = RequestLifecycleManager(
        uow_factory=flaky_factory, max_retries=2, retry_backoff_seconds=0.25, sleep=delays.append
    )
    assert manager.create("stu-1", "sup-1").request.state is RequestState.PENDING
    assert delays == [0.25]


def test_count_pending_requires_one_filter(manager: RequestLifecycleManager) -> None:
    with pytest.raises(ValidationError):
        manager.count_pending()
    with pytest.raises(ValidationError):
        manager.count_pending(student_id="a", supervisor_id="b")


def test_accepted_pair_cannot_request_again(manager: RequestLifecycleManager, seed) -> None:
    seed("sup-1", 2)
    request = manager.create("stu-1", "sup-1").request
    manager.accept(request.id)

    with pytest.raises(DuplicateRequestError) as excinfo:
        manager.create("stu-1", "sup-1")
    assert excinfo.value.state == "ACCEPTED"
    assert manager.count_pending(student_id="stu-1") == 0


def test_history_keeps_recording_order_when_clock_stands_still(manager: RequestLifecycleManager, seed) -> None:
    seed("sup-1", 2)
    request = manager.create("stu-1", "sup-1").request
    manager.accept(request.id)
    manager.withdraw(request.id)

    history = manager.history(request.id)
    assert [event.event_type for event in history] == [
        "SupervisionRequestCreated",
        "SupervisionRequestAccepted",
        "SupervisionRequestWithdrawn",
    ]
    assert len({event.occurred_at for event in history}) == 1


def test_oversized_ids_are_validation_errors(manager: RequestLifecycleManager, seed) -> None:
    seed("sup-1", 1)
    with pytest.raises(ValidationError) as excinfo:
        manager.create("s" * 65, "sup-1")
    assert [issue.code for issue in excinfo.value.issues] == ["ID_TOO_LONG"]
    assert manager.count_pending(supervisor_id="sup-1") == 0


def test_list_requests_rejects_unknown_state(manager: RequestLifecycleManager, seed) -> None:
    seed("sup-1", 1)
    manager.create("stu-1", "sup-1")

    with pytest.raises(ValidationError) as excinfo:
        manager.list_requests(state="bogus")
    assert [issue.code for issue in excinfo.value.issues] == ["STATE_UNKNOWN"]
    assert [row.state for row in manager.list_requests(state="PENDING")] == [RequestState.PENDING]
