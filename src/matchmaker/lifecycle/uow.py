"""Transaction boundary shared by lifecycle commands, imports and queries.

A unit of work owns one session. Leaving the ``with`` block commits, unless
the block raised, in which case everything written inside it is rolled back.
Repositories are bound to the session on first access.
"""
from __future__ import annotations

from contextlib import AbstractContextManager
from functools import cached_property
from typing import Callable, Protocol, TypeVar

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from matchmaker.core.clock import Clock
from matchmaker.infrastructure.persistence.repositories import (
    SupervisionRequestRepository,
    SupervisorRepository,
    TagRepository,
    UserTagRepository,
)

from .events import RequestEventRepository
from .ledger import CapacityLedger

T = TypeVar("T")
SessionFactory = Callable[[], Session]


class UnitOfWorkError(RuntimeError):
    """Commit failed at the database; ``__cause__`` holds the driver error."""


_CONTENTION_MARKERS = (
    "database is locked",
    "database table is locked",
    "deadlock",
    "could not serialize",
    "lock wait timeout",
)


def _is_contention(exc: OperationalError) -> bool:
    detail = str(exc.orig if exc.orig is not None else exc).lower()
    return any(marker in detail for marker in _CONTENTION_MARKERS)


def is_retryable(exc: BaseException) -> bool:
    """Lock and serialization failures are worth another attempt.

    Other operational errors (missing tables, lost connections) are raised
    to the caller unchanged.
    """

    if isinstance(exc, UnitOfWorkError):
        exc = exc.__cause__
    return isinstance(exc, OperationalError) and _is_contention(exc)


class UnitOfWork(AbstractContextManager):
    session: Session

    def commit(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def rollback(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def close(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def __exit__(self, exc_type, exc, tb) -> bool:
        try:
            if exc is None:
                self.commit()
            else:
                self.rollback()
        finally:
            self.close()
        return False


class SQLAlchemyUnitOfWork(UnitOfWork):
    def __init__(self, session_factory: SessionFactory) -> None:
        self.session = session_factory()

    @cached_property
    def tags(self) -> TagRepository:
        return TagRepository(self.session)

    @cached_property
    def profiles(self) -> UserTagRepository:
        return UserTagRepository(self.session)

    @cached_property
    def supervisors(self) -> SupervisorRepository:
        return SupervisorRepository(self.session)

    @cached_property
    def requests(self) -> SupervisionRequestRepository:
        return SupervisionRequestRepository(self.session)

    @cached_property
    def events(self) -> RequestEventRepository:
        return RequestEventRepository(self.session)

    def ledger(self, clock: Clock | None = None) -> CapacityLedger:
        return CapacityLedger(self.session, clock=clock)

    def commit(self) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise UnitOfWorkError("COMMIT_FAILED") from exc

    def rollback(self) -> None:
        self.session.rollback()

    def close(self) -> None:
        self.session.close()


class UnitOfWorkFactory(Protocol):
    def __call__(self) -> SQLAlchemyUnitOfWork:
        """Return a unit of work holding a fresh session."""


def sqlalchemy_uow_factory(session_factory: SessionFactory) -> UnitOfWorkFactory:
    def factory() -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(session_factory)

    return factory


def with_transaction(uow_factory: UnitOfWorkFactory, fn: Callable[[SQLAlchemyUnitOfWork], T]) -> T:
    """Run ``fn`` inside one transaction: commit on return, roll back on raise."""

    with uow_factory() as uow:
        return fn(uow)


__all__ = [
    "SQLAlchemyUnitOfWork",
    "SessionFactory",
    "UnitOfWork",
    "UnitOfWorkError",
    "UnitOfWorkFactory",
    "is_retryable",
    "sqlalchemy_uow_factory",
    "with_transaction",
]
