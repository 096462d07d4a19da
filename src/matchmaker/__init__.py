"""Supervisor matching and capacity-aware supervision-request lifecycle."""

from .domain.errors import (
    CapacityExceededError,
    DuplicateRequestError,
    InvalidStateTransitionError,
    MatchmakerError,
    MultipleAcceptanceError,
    RequestCooldownError,
    RequestNotFoundError,
    SelfSupervisionError,
    SupervisorNotFoundError,
    ValidationError,
)
from .domain.states import RequestState
from .lifecycle import RequestLifecycleManager, TransitionResult
from .matching import SupervisorRanker, TagGraph, TagGraphStore, compatibility_score

__version__ = "0.1.0"

__all__ = [
    "CapacityExceededError",
    "DuplicateRequestError",
    "InvalidStateTransitionError",
    "MatchmakerError",
    "MultipleAcceptanceError",
    "RequestCooldownError",
    "RequestLifecycleManager",
    "RequestNotFoundError",
    "RequestState",
    "SelfSupervisionError",
    "SupervisorNotFoundError",
    "SupervisorRanker",
    "TagGraph",
    "TagGraphStore",
    "TransitionResult",
    "ValidationError",
    "compatibility_score",
]
