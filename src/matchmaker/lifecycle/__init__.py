"""Supervision-request lifecycle public API."""

from .events import RequestEvent, RequestEventRepository, derive_event_id
from .ledger import CapacityLedger, CapacitySnapshot
from .manager import RequestLifecycleManager, SupervisionRequest, TransitionResult
from .uow import (
    SQLAlchemyUnitOfWork,
    UnitOfWork,
    UnitOfWorkError,
    UnitOfWorkFactory,
    is_retryable,
    sqlalchemy_uow_factory,
    with_transaction,
)

__all__ = [
    "CapacityLedger",
    "CapacitySnapshot",
    "RequestEvent",
    "RequestEventRepository",
    "RequestLifecycleManager",
    "SQLAlchemyUnitOfWork",
    "SupervisionRequest",
    "TransitionResult",
    "UnitOfWork",
    "UnitOfWorkError",
    "UnitOfWorkFactory",
    "derive_event_id",
    "is_retryable",
    "sqlalchemy_uow_factory",
    "with_transaction",
]
