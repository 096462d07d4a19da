"""Capacity ledger: the only writer of supervisor spot counters.

All counter changes are conditional UPDATE statements checked by row count,
so the invariant ``0 <= available_spots <= total_spots`` holds even when
several transactions race for the last spot.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from matchmaker.core.clock import Clock, SystemClock
from matchmaker.domain.errors import (
    CapacityExceededError,
    SupervisorNotFoundError,
    ValidationError,
    ValidationIssue,
)
from matchmaker.infrastructure.monitoring.metrics import capacity_exceeded_total
from matchmaker.infrastructure.persistence.models import CapacityReservationModel, SupervisorModel
from matchmaker.matching.validation import validate_capacity

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CapacitySnapshot:
    supervisor_id: str
    total_spots: int
    available_spots: int
    held_reservations: int


class CapacityLedger:
    """Reserve/release spots inside the caller's transaction."""

    def __init__(self, session: Session, *, clock: Clock | None = None) -> None:
        self._session = session
        self._clock = clock or SystemClock()

    def register(self, supervisor_id: str, total_spots: int, available_spots: int | None = None) -> CapacitySnapshot:
        """Create the capacity row for a new supervisor."""

        validate_capacity(total_spots, available_spots).raise_for_issues()
        available = total_spots if available_spots is None else available_spots
        self._session.add(
            SupervisorModel(supervisor_id=supervisor_id, total_spots=total_spots, available_spots=available)
        )
        self._session.flush()
        return CapacitySnapshot(supervisor_id, total_spots, available, 0)

    def reserve(self, supervisor_id: str, request_id: str) -> CapacitySnapshot:
        """Take one spot for ``request_id`` or raise :class:`CapacityExceededError`."""

        stmt = (
            update(SupervisorModel)
            .where(
                SupervisorModel.supervisor_id == supervisor_id,
                SupervisorModel.available_spots > 0,
            )
            .values(available_spots=SupervisorModel.available_spots - 1)
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(stmt)
        if result.rowcount != 1:
            self._require_supervisor(supervisor_id)
            capacity_exceeded_total.inc()
            logger.info(
                "no capacity left for reservation",
                extra={"code": "CAPACITY_EXCEEDED", "supervisor": supervisor_id, "request": request_id},
            )
            raise CapacityExceededError(supervisor_id)
        self._session.add(
            CapacityReservationModel(
                request_id=request_id,
                supervisor_id=supervisor_id,
                reserved_at=self._clock.now(),
            )
        )
        self._session.flush()
        return self.snapshot(supervisor_id)

    def release(self, supervisor_id: str, request_id: str) -> bool:
        """Return the spot held by ``request_id``; unmatched releases are ignored."""

        removed = self._session.execute(
            delete(CapacityReservationModel)
            .where(
                CapacityReservationModel.request_id == request_id,
                CapacityReservationModel.supervisor_id == supervisor_id,
            )
            .execution_options(synchronize_session=False)
        )
        if removed.rowcount != 1:
            logger.warning(
                "release without matching reservation ignored",
                extra={"code": "RELEASE_UNMATCHED", "supervisor": supervisor_id, "request": request_id},
            )
            return False
        self._session.execute(
            update(SupervisorModel)
            .where(
                SupervisorModel.supervisor_id == supervisor_id,
                SupervisorModel.available_spots < SupervisorModel.total_spots,
            )
            .values(available_spots=SupervisorModel.available_spots + 1)
            .execution_options(synchronize_session=False)
        )
        return True

    def set_total_spots(self, supervisor_id: str, total_spots: int) -> CapacitySnapshot:
        """Resize capacity, shifting availability by the same delta."""

        validate_capacity(total_spots).raise_for_issues()
        current = self._lock_supervisor(supervisor_id)
        held = self._held(supervisor_id)
        if total_spots < held:
            raise ValidationError(
                [
                    ValidationIssue(
                        "TOTAL_BELOW_HELD",
                        f"total_spots={total_spots} is below the {held} spots already accepted",
                        "total_spots",
                    )
                ]
            )
        delta = total_spots - current.total_spots
        available = max(0, min(total_spots - held, current.available_spots + delta))
        self._session.execute(
            update(SupervisorModel)
            .where(SupervisorModel.supervisor_id == supervisor_id)
            .values(total_spots=total_spots, available_spots=available)
            .execution_options(synchronize_session=False)
        )
        logger.info(
            "supervisor capacity resized",
            extra={"code": "CAPACITY_RESIZED", "supervisor": supervisor_id, "total": total_spots, "available": available},
        )
        return CapacitySnapshot(supervisor_id, total_spots, available, held)

    def snapshot(self, supervisor_id: str) -> CapacitySnapshot:
        row = self._require_supervisor(supervisor_id)
        return CapacitySnapshot(
            supervisor_id=supervisor_id,
            total_spots=row.total_spots,
            available_spots=row.available_spots,
            held_reservations=self._held(supervisor_id),
        )

    def _held(self, supervisor_id: str) -> int:
        stmt = select(func.count()).select_from(CapacityReservationModel).where(
            CapacityReservationModel.supervisor_id == supervisor_id
        )
        return int(self._session.execute(stmt).scalar_one())

    def _require_supervisor(self, supervisor_id: str) -> SupervisorModel:
        row = self._session.get(SupervisorModel, supervisor_id, populate_existing=True)
        if row is None:
            raise SupervisorNotFoundError(supervisor_id)
        return row

    def _lock_supervisor(self, supervisor_id: str) -> SupervisorModel:
        stmt = (
            select(SupervisorModel)
            .where(SupervisorModel.supervisor_id == supervisor_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        row = self._session.execute(stmt).scalar_one_or_none()
        if row is None:
            raise SupervisorNotFoundError(supervisor_id)
        return row


__all__ = ["CapacityLedger", "CapacitySnapshot"]
