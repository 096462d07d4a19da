# -*- coding: utf-8 -*-
from __future__ import annotations

from enum import StrEnum
from typing import Dict, FrozenSet


class RequestState(StrEnum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    WITHDRAWN = "WITHDRAWN"


# ACCEPTED admits exactly one exit: a withdrawal that returns the spot.
ALLOWED_TRANSITIONS: Dict[RequestState, FrozenSet[RequestState]] = {
    RequestState.PENDING: frozenset(
        {RequestState.ACCEPTED, RequestState.REJECTED, RequestState.WITHDRAWN}
    ),
    RequestState.ACCEPTED: frozenset({RequestState.WITHDRAWN}),
    RequestState.REJECTED: frozenset(),
    RequestState.WITHDRAWN: frozenset(),
}

DECIDED_STATES: FrozenSet[RequestState] = frozenset({RequestState.ACCEPTED, RequestState.REJECTED})
CLOSED_STATES: FrozenSet[RequestState] = frozenset({RequestState.REJECTED, RequestState.WITHDRAWN})


def can_transition(current: RequestState | str, target: RequestState | str) -> bool:
    return RequestState(target) in ALLOWED_TRANSITIONS[RequestState(current)]


__all__ = [
    "ALLOWED_TRANSITIONS",
    "CLOSED_STATES",
    "DECIDED_STATES",
    "RequestState",
    "can_transition",
]
