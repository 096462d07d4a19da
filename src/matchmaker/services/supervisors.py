"""Supervisor capacity import."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Mapping

from matchmaker.lifecycle.ledger import CapacitySnapshot
from matchmaker.lifecycle.uow import SQLAlchemyUnitOfWork, UnitOfWorkFactory, with_transaction
from matchmaker.matching.schemas import SupervisorsBulkImport, parse_payload

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SupervisorImportSummary:
    created: int
    updated: int
    snapshots: tuple[CapacitySnapshot, ...]


class SupervisorImportService:
    def __init__(self, uow_factory: UnitOfWorkFactory) -> None:
        self._uow_factory = uow_factory

    def bulk_import(self, payload: Mapping[str, Any]) -> SupervisorImportSummary:
        """Register unknown supervisors and resize the known ones, all or nothing."""

        request = parse_payload(SupervisorsBulkImport, payload)

        def apply(uow: SQLAlchemyUnitOfWork) -> SupervisorImportSummary:
            supervisors = uow.supervisors
            ledger = uow.ledger()
            created = updated = 0
            snapshots: List[CapacitySnapshot] = []
            for item in request.supervisors:
                existing = supervisors.get(item.supervisor_id)
                if existing is None:
                    snapshots.append(ledger.register(item.supervisor_id, item.total_spots))
                    created += 1
                else:
                    snapshots.append(ledger.set_total_spots(item.supervisor_id, item.total_spots))
                    updated += 1
                if item.bio is not None:
                    supervisors.set_bio(item.supervisor_id, item.bio)
            return SupervisorImportSummary(created=created, updated=updated, snapshots=tuple(snapshots))

        summary = with_transaction(self._uow_factory, apply)
        logger.info(
            "supervisor capacities imported",
            extra={
                "code": "SUPERVISOR_IMPORT_APPLIED",
                "supervisors_created": summary.created,
                "supervisors_updated": summary.updated,
            },
        )
        return summary


__all__ = ["SupervisorImportService", "SupervisorImportSummary"]
