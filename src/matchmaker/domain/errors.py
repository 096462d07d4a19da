# -*- coding: utf-8 -*-
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence


@dataclass(eq=False)
class MatchmakerError(Exception):
    error_code: str
    message: str

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.error_code}: {self.message}"


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    """Single rejected field or record in an input payload."""

    code: str
    message: str
    field: str | None = None


class ValidationError(MatchmakerError):
    def __init__(self, issues: Sequence[ValidationIssue]):
        self.issues = tuple(issues)
        summary = "; ".join(issue.message for issue in self.issues) or "invalid input"
        super().__init__("VALIDATION_FAILED", summary)


class DuplicateRequestError(MatchmakerError):
    def __init__(self, student_id: str, supervisor_id: str, state: str = "PENDING"):
        self.state = state
        super().__init__(
            "DUPLICATE_REQUEST",
            f"Student {student_id} already has a {state} request with supervisor {supervisor_id}",
        )


class InvalidStateTransitionError(MatchmakerError):
    def __init__(self, request_id: str, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(
            "INVALID_STATE_TRANSITION",
            f"Request {request_id} cannot move from {current} to {target}",
        )


class CapacityExceededError(MatchmakerError):
    def __init__(self, supervisor_id: str):
        self.supervisor_id = supervisor_id
        super().__init__("CAPACITY_EXCEEDED", f"Supervisor {supervisor_id} has no remaining capacity")


class RequestNotFoundError(MatchmakerError):
    def __init__(self, request_id: str):
        super().__init__("REQUEST_NOT_FOUND", f"Supervision request {request_id} not found")


class SupervisorNotFoundError(MatchmakerError):
    def __init__(self, supervisor_id: str):
        super().__init__("SUPERVISOR_NOT_FOUND", f"Supervisor {supervisor_id} not found")


class RequestCooldownError(MatchmakerError):
    def __init__(self, supervisor_id: str, cooldown_days: int):
        self.cooldown_days = cooldown_days
        super().__init__(
            "REQUEST_COOLDOWN",
            f"A new request to supervisor {supervisor_id} is possible {cooldown_days} days "
            "after the last rejection or withdrawal",
        )


class SelfSupervisionError(MatchmakerError):
    def __init__(self, user_id: str):
        super().__init__("SELF_SUPERVISION", f"User {user_id} cannot supervise themselves")


class MultipleAcceptanceError(MatchmakerError):
    def __init__(self, student_id: str):
        super().__init__(
            "MULTIPLE_ACCEPTANCE",
            f"Student {student_id} already has an accepted supervision request",
        )


__all__ = [
    "CapacityExceededError",
    "DuplicateRequestError",
    "InvalidStateTransitionError",
    "MatchmakerError",
    "MultipleAcceptanceError",
    "RequestCooldownError",
    "RequestNotFoundError",
    "SelfSupervisionError",
    "SupervisorNotFoundError",
    "ValidationError",
    "ValidationIssue",
]
