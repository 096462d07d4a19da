"""Supervision-request state machine coordinated with the capacity ledger."""
from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Tuple, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError

from matchmaker.config.settings import MatchmakerSettings
from matchmaker.core.clock import Clock, SystemClock, as_utc
from matchmaker.domain.errors import (
    DuplicateRequestError,
    InvalidStateTransitionError,
    MultipleAcceptanceError,
    RequestCooldownError,
    RequestNotFoundError,
    SelfSupervisionError,
    SupervisorNotFoundError,
    ValidationError,
    ValidationIssue,
)
from matchmaker.domain.states import CLOSED_STATES, RequestState, can_transition
from matchmaker.infrastructure.monitoring.metrics import record_command
from matchmaker.infrastructure.persistence.models import SupervisionRequestModel
from matchmaker.infrastructure.persistence.repositories import SupervisionRequestRepository

from .events import (
    REQUEST_ACCEPTED,
    REQUEST_AUTO_WITHDRAWN,
    REQUEST_CREATED,
    REQUEST_INVITED,
    REQUEST_REJECTED,
    REQUEST_WITHDRAWN,
    RequestEvent,
)
from .uow import (
    SessionFactory,
    SQLAlchemyUnitOfWork,
    UnitOfWorkError,
    UnitOfWorkFactory,
    is_retryable,
    sqlalchemy_uow_factory,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Matches the width of the student and supervisor id columns.
MAX_ID_LENGTH = 64


@dataclass(frozen=True, slots=True)
class SupervisionRequest:
    """Read model of a persisted request."""

    id: str
    student_id: str
    supervisor_id: str
    state: RequestState
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, model: SupervisionRequestModel) -> "SupervisionRequest":
        return cls(
            id=model.id,
            student_id=model.student_id,
            supervisor_id=model.supervisor_id,
            state=RequestState(model.state),
            created_at=as_utc(model.created_at),
            updated_at=as_utc(model.updated_at),
        )


@dataclass(frozen=True, slots=True)
class TransitionResult:
    """Outcome of one lifecycle command."""

    request: SupervisionRequest
    capacity_delta: int = 0
    auto_withdrawn: Tuple[str, ...] = ()


class RequestLifecycleManager:
    """Executes create/accept/reject/withdraw/invite inside single transactions."""

    def __init__(
        self,
        *,
        uow_factory: UnitOfWorkFactory,
        clock: Clock | None = None,
        cooldown_days: int = 14,
        auto_withdraw_on_accept: bool = True,
        max_retries: int = 3,
        retry_backoff_seconds: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._uow_factory = uow_factory
        self._clock = clock or SystemClock()
        self._cooldown_days = cooldown_days
        self._auto_withdraw = auto_withdraw_on_accept
        self._max_retries = max_retries
        self._backoff = retry_backoff_seconds
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        session_factory: SessionFactory,
        settings: MatchmakerSettings,
        *,
        clock: Clock | None = None,
    ) -> "RequestLifecycleManager":
        return cls(
            uow_factory=sqlalchemy_uow_factory(session_factory),
            clock=clock,
            cooldown_days=settings.request_cooldown_days,
            auto_withdraw_on_accept=settings.auto_withdraw_on_accept,
            max_retries=settings.max_retries,
        )

    # commands -----------------------------------------------------------------

    @record_command("create")
    def create(self, student_id: str, supervisor_id: str) -> TransitionResult:
        """Open a PENDING request from a student to a supervisor."""

        self._require_ids(student_id=student_id, supervisor_id=supervisor_id)
        return self._run("create", lambda uow: self._create_once(uow, student_id, supervisor_id))

    @record_command("invite")
    def invite(self, supervisor_id: str, student_id: str) -> TransitionResult:
        """Supervisor-initiated request that starts out ACCEPTED."""

        self._require_ids(student_id=student_id, supervisor_id=supervisor_id)
        return self._run("invite", lambda uow: self._invite_once(uow, supervisor_id, student_id))

    @record_command("accept")
    def accept(self, request_id: str) -> TransitionResult:
        return self._run("accept", lambda uow: self._accept_once(uow, request_id))

    @record_command("reject")
    def reject(self, request_id: str) -> TransitionResult:
        return self._run("reject", lambda uow: self._reject_once(uow, request_id))

    @record_command("withdraw")
    def withdraw(self, request_id: str) -> TransitionResult:
        return self._run("withdraw", lambda uow: self._withdraw_once(uow, request_id))

    # queries ------------------------------------------------------------------

    def get(self, request_id: str) -> SupervisionRequest:
        def load(uow: SQLAlchemyUnitOfWork) -> SupervisionRequest:
            return SupervisionRequest.from_model(self._load(uow.requests, request_id))

        return self._run("get", load)

    def list_requests(
        self,
        *,
        student_id: str | None = None,
        supervisor_id: str | None = None,
        state: RequestState | str | None = None,
    ) -> List[SupervisionRequest]:
        """Requests matching the filters, most recently updated first."""

        try:
            wanted = RequestState(state) if state is not None else None
        except ValueError:
            raise ValidationError(
                [ValidationIssue("STATE_UNKNOWN", f"unknown request state: {state!r}", "state")]
            ) from None

        def load(uow: SQLAlchemyUnitOfWork) -> List[SupervisionRequest]:
            rows = uow.requests.find(
                student_id=student_id, supervisor_id=supervisor_id, state=wanted
            )
            return [SupervisionRequest.from_model(row) for row in rows]

        return self._run("list", load)

    def count_pending(self, *, student_id: str | None = None, supervisor_id: str | None = None) -> int:
        if (student_id is None) == (supervisor_id is None):
            raise ValidationError(
                [ValidationIssue("FILTER_AMBIGUOUS", "pass exactly one of student_id or supervisor_id")]
            )

        def load(uow: SQLAlchemyUnitOfWork) -> int:
            return uow.requests.count(
                student_id=student_id, supervisor_id=supervisor_id, state=RequestState.PENDING
            )

        return self._run("count_pending", load)

    def history(self, request_id: str) -> List[RequestEvent]:
        """Transition events recorded for ``request_id`` in occurrence order."""

        def load(uow: SQLAlchemyUnitOfWork) -> List[RequestEvent]:
            self._load(uow.requests, request_id)
            rows = uow.events.list_for_request(request_id)
            return [
                RequestEvent(
                    request_id=row.request_id,
                    event_type=row.event_type,
                    from_state=row.from_state,
                    to_state=row.to_state,
                    capacity_delta=row.capacity_delta,
                    occurred_at=as_utc(row.occurred_at),
                    payload=json.loads(row.payload_json),
                )
                for row in rows
            ]

        return self._run("history", load)

    # transaction bodies -------------------------------------------------------

    def _create_once(self, uow: SQLAlchemyUnitOfWork, student_id: str, supervisor_id: str) -> TransitionResult:
        requests = uow.requests
        self._require_supervisor(uow, student_id, supervisor_id)

        latest = requests.latest_for_pair(student_id, supervisor_id)
        if latest is not None:
            latest_state = RequestState(latest.state)
            if latest_state in (RequestState.PENDING, RequestState.ACCEPTED):
                raise DuplicateRequestError(student_id, supervisor_id, latest_state.value)
            if latest_state in CLOSED_STATES and self._within_cooldown(latest.updated_at):
                raise RequestCooldownError(supervisor_id, self._cooldown_days)

        now = self._clock.now()
        model = SupervisionRequestModel(
            student_id=student_id,
            supervisor_id=supervisor_id,
            state=RequestState.PENDING.value,
            created_at=now,
            updated_at=now,
        )
        try:
            requests.add(model)
        except IntegrityError as exc:
            raise DuplicateRequestError(student_id, supervisor_id) from exc

        self._record(uow, model.id, REQUEST_CREATED, None, RequestState.PENDING, 0, now, student_id, supervisor_id)
        logger.info(
            "supervision request created",
            extra={"code": "REQUEST_CREATED", "request": model.id, "student": student_id, "supervisor": supervisor_id},
        )
        return TransitionResult(request=SupervisionRequest.from_model(model))

    def _invite_once(self, uow: SQLAlchemyUnitOfWork, supervisor_id: str, student_id: str) -> TransitionResult:
        requests = uow.requests
        self._require_supervisor(uow, student_id, supervisor_id)
        if requests.count(student_id=student_id, state=RequestState.ACCEPTED):
            raise MultipleAcceptanceError(student_id)

        now = self._clock.now()
        model = SupervisionRequestModel(
            student_id=student_id,
            supervisor_id=supervisor_id,
            state=RequestState.ACCEPTED.value,
            created_at=now,
            updated_at=now,
        )
        try:
            requests.add(model)
        except IntegrityError as exc:
            raise MultipleAcceptanceError(student_id) from exc

        uow.ledger(self._clock).reserve(supervisor_id, model.id)
        self._record(uow, model.id, REQUEST_INVITED, None, RequestState.ACCEPTED, -1, now, student_id, supervisor_id)
        withdrawn = self._withdraw_competing(uow, student_id, model.id, now)
        logger.info(
            "supervisor invitation accepted",
            extra={"code": "REQUEST_INVITED", "request": model.id, "student": student_id, "supervisor": supervisor_id},
        )
        return TransitionResult(
            request=SupervisionRequest.from_model(model), capacity_delta=-1, auto_withdrawn=withdrawn
        )

    def _accept_once(self, uow: SQLAlchemyUnitOfWork, request_id: str) -> TransitionResult:
        requests = uow.requests
        request = self._load(requests, request_id)
        self._check_transition(request, RequestState.ACCEPTED)
        if requests.count(student_id=request.student_id, state=RequestState.ACCEPTED):
            raise MultipleAcceptanceError(request.student_id)

        now = self._clock.now()
        try:
            moved = requests.compare_and_set_state(
                request_id, expected=RequestState.PENDING, target=RequestState.ACCEPTED, updated_at=now
            )
        except IntegrityError as exc:
            raise MultipleAcceptanceError(request.student_id) from exc
        if not moved:
            self._raise_stale(requests, request_id, RequestState.ACCEPTED)

        # A CapacityExceededError here rolls the state change back with it.
        uow.ledger(self._clock).reserve(request.supervisor_id, request_id)
        self._record(
            uow, request_id, REQUEST_ACCEPTED, RequestState.PENDING, RequestState.ACCEPTED, -1, now,
            request.student_id, request.supervisor_id,
        )
        withdrawn: Tuple[str, ...] = ()
        if self._auto_withdraw:
            withdrawn = self._withdraw_competing(uow, request.student_id, request_id, now)
        logger.info(
            "supervision request accepted",
            extra={"code": "REQUEST_ACCEPTED", "request": request_id, "auto_withdrawn": len(withdrawn)},
        )
        return TransitionResult(
            request=SupervisionRequest.from_model(self._load(requests, request_id)),
            capacity_delta=-1,
            auto_withdrawn=withdrawn,
        )

    def _reject_once(self, uow: SQLAlchemyUnitOfWork, request_id: str) -> TransitionResult:
        requests = uow.requests
        request = self._load(requests, request_id)
        self._check_transition(request, RequestState.REJECTED)
        now = self._clock.now()
        if not requests.compare_and_set_state(
            request_id, expected=RequestState.PENDING, target=RequestState.REJECTED, updated_at=now
        ):
            self._raise_stale(requests, request_id, RequestState.REJECTED)
        self._record(
            uow, request_id, REQUEST_REJECTED, RequestState.PENDING, RequestState.REJECTED, 0, now,
            request.student_id, request.supervisor_id,
        )
        logger.info("supervision request rejected", extra={"code": "REQUEST_REJECTED", "request": request_id})
        return TransitionResult(request=SupervisionRequest.from_model(self._load(requests, request_id)))

    def _withdraw_once(self, uow: SQLAlchemyUnitOfWork, request_id: str) -> TransitionResult:
        requests = uow.requests
        request = self._load(requests, request_id)
        current = self._check_transition(request, RequestState.WITHDRAWN)
        now = self._clock.now()
        if not requests.compare_and_set_state(
            request_id, expected=current, target=RequestState.WITHDRAWN, updated_at=now
        ):
            self._raise_stale(requests, request_id, RequestState.WITHDRAWN)

        delta = 0
        if current is RequestState.ACCEPTED:
            released = uow.ledger(self._clock).release(request.supervisor_id, request_id)
            delta = 1 if released else 0
        self._record(
            uow, request_id, REQUEST_WITHDRAWN, current, RequestState.WITHDRAWN, delta, now,
            request.student_id, request.supervisor_id,
        )
        logger.info(
            "supervision request withdrawn",
            extra={"code": "REQUEST_WITHDRAWN", "request": request_id, "from_state": current.value, "delta": delta},
        )
        return TransitionResult(
            request=SupervisionRequest.from_model(self._load(requests, request_id)), capacity_delta=delta
        )

    # helpers ------------------------------------------------------------------

    def _run(self, command: str, operation: Callable[[SQLAlchemyUnitOfWork], T]) -> T:
        attempt = 0
        while True:
            try:
                with self._uow_factory() as uow:
                    return operation(uow)
            except (OperationalError, UnitOfWorkError) as exc:
                if not is_retryable(exc):
                    raise
                attempt += 1
                if attempt > self._max_retries:
                    logger.error(
                        "lifecycle transaction failed",
                        extra={"code": "TX_FAILED", "command": command, "detail": str(exc)},
                    )
                    raise
                backoff = min(self._backoff * (2 ** (attempt - 1)), 5.0)
                logger.warning(
                    "lifecycle transaction contended; retrying",
                    extra={"code": "TX_RETRY", "command": command, "delay": backoff, "attempt": attempt},
                )
                self._sleep(backoff)

    def _withdraw_competing(
        self, uow: SQLAlchemyUnitOfWork, student_id: str, keep_id: str, now: datetime
    ) -> Tuple[str, ...]:
        requests = uow.requests
        withdrawn: List[str] = []
        for other in requests.find(student_id=student_id, state=RequestState.PENDING, exclude_id=keep_id):
            if requests.compare_and_set_state(
                other.id, expected=RequestState.PENDING, target=RequestState.WITHDRAWN, updated_at=now
            ):
                self._record(
                    uow, other.id, REQUEST_AUTO_WITHDRAWN, RequestState.PENDING, RequestState.WITHDRAWN, 0, now,
                    student_id, other.supervisor_id,
                )
                withdrawn.append(other.id)
        return tuple(withdrawn)

    def _record(
        self,
        uow: SQLAlchemyUnitOfWork,
        request_id: str,
        event_type: str,
        from_state: RequestState | None,
        to_state: RequestState,
        capacity_delta: int,
        occurred_at: datetime,
        student_id: str,
        supervisor_id: str,
    ) -> None:
        uow.events.add(
            RequestEvent(
                request_id=request_id,
                event_type=event_type,
                from_state=from_state.value if from_state else None,
                to_state=to_state.value,
                capacity_delta=capacity_delta,
                occurred_at=occurred_at,
                payload={
                    "request_id": request_id,
                    "student_id": student_id,
                    "supervisor_id": supervisor_id,
                    "occurred_at": occurred_at.isoformat(),
                },
            )
        )

    def _within_cooldown(self, updated_at: datetime) -> bool:
        if self._cooldown_days <= 0:
            return False
        return self._clock.now() - as_utc(updated_at) < timedelta(days=self._cooldown_days)

    @staticmethod
    def _require_ids(**ids: str) -> None:
        issues = []
        for name, value in ids.items():
            if not isinstance(value, str) or not value.strip():
                issues.append(ValidationIssue("ID_BLANK", f"{name} must not be empty", name))
            elif len(value) > MAX_ID_LENGTH:
                issues.append(
                    ValidationIssue("ID_TOO_LONG", f"{name} exceeds {MAX_ID_LENGTH} characters", name)
                )
        if issues:
            raise ValidationError(issues)

    @staticmethod
    def _require_supervisor(uow: SQLAlchemyUnitOfWork, student_id: str, supervisor_id: str) -> None:
        if student_id == supervisor_id:
            raise SelfSupervisionError(student_id)
        if uow.supervisors.get(supervisor_id) is None:
            raise SupervisorNotFoundError(supervisor_id)

    @staticmethod
    def _load(requests: SupervisionRequestRepository, request_id: str) -> SupervisionRequestModel:
        request = requests.get(request_id)
        if request is None:
            raise RequestNotFoundError(request_id)
        return request

    @staticmethod
    def _check_transition(request: SupervisionRequestModel, target: RequestState) -> RequestState:
        current = RequestState(request.state)
        if not can_transition(current, target):
            raise InvalidStateTransitionError(request.id, current.value, target.value)
        return current

    def _raise_stale(
        self, requests: SupervisionRequestRepository, request_id: str, target: RequestState
    ) -> None:
        latest = self._load(requests, request_id)
        raise InvalidStateTransitionError(request_id, RequestState(latest.state).value, target.value)


__all__ = ["RequestLifecycleManager", "SupervisionRequest", "TransitionResult"]
