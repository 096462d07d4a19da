"""Request transition events persisted atomically with state changes."""
from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Sequence
from uuid import UUID, uuid5

from sqlalchemy import select
from sqlalchemy.orm import Session

from matchmaker.infrastructure.monitoring.metrics import request_transition_total
from matchmaker.infrastructure.persistence.models import RequestEventModel

EVENT_NAMESPACE = UUID("0d6f3f8e-5c1a-4b7e-9a57-2f1b8c4e6d21")
_MAX_PAYLOAD_BYTES = 8192

REQUEST_CREATED = "SupervisionRequestCreated"
REQUEST_INVITED = "SupervisionRequestInvited"
REQUEST_ACCEPTED = "SupervisionRequestAccepted"
REQUEST_REJECTED = "SupervisionRequestRejected"
REQUEST_WITHDRAWN = "SupervisionRequestWithdrawn"
REQUEST_AUTO_WITHDRAWN = "SupervisionRequestAutoWithdrawn"


def derive_event_id(request_id: str, event_type: str) -> str:
    """Each event type occurs at most once per request, so the pair is unique."""

    return str(uuid5(EVENT_NAMESPACE, f"{request_id}|{event_type}"))


@dataclass(slots=True)
class RequestEvent:
    request_id: str
    event_type: str
    from_state: str | None
    to_state: str
    capacity_delta: int
    occurred_at: datetime
    payload: dict[str, Any]

    @property
    def event_id(self) -> str:
        return derive_event_id(self.request_id, self.event_type)

    def to_model(self) -> RequestEventModel:
        payload_json = json.dumps(self.payload, ensure_ascii=False, sort_keys=True)
        if len(payload_json.encode("utf-8")) > _MAX_PAYLOAD_BYTES:
            raise ValueError("PAYLOAD_TOO_LARGE|event payload exceeds the allowed size")
        if self.capacity_delta not in (-1, 0, 1):
            raise ValueError("CAPACITY_DELTA_INVALID|capacity delta must be -1, 0 or 1")
        return RequestEventModel(
            event_id=self.event_id,
            request_id=self.request_id,
            event_type=self.event_type,
            from_state=self.from_state,
            to_state=self.to_state,
            capacity_delta=self.capacity_delta,
            occurred_at=self.occurred_at,
            payload_json=payload_json,
        )


class RequestEventRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def add(self, event: RequestEvent) -> None:
        self._session.add(event.to_model())
        request_transition_total.labels(event_type=event.event_type).inc()

    def list_for_request(self, request_id: str) -> Sequence[RequestEventModel]:
        stmt = (
            select(RequestEventModel)
            .where(RequestEventModel.request_id == request_id)
            .order_by(RequestEventModel.sequence)
        )
        return self._session.execute(stmt).scalars().all()


__all__ = [
    "REQUEST_ACCEPTED",
    "REQUEST_AUTO_WITHDRAWN",
    "REQUEST_CREATED",
    "REQUEST_INVITED",
    "REQUEST_REJECTED",
    "REQUEST_WITHDRAWN",
    "RequestEvent",
    "RequestEventRepository",
    "derive_event_id",
]
