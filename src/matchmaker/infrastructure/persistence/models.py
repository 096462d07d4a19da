# -*- coding: utf-8 -*-
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import declarative_base, relationship

from matchmaker.domain.states import RequestState


Base = declarative_base()

_REQUEST_STATES = tuple(state.value for state in RequestState)


class TagModel(Base):
    __tablename__ = "tags"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    name = Column(String(128), nullable=False, unique=True)


class TagSimilarityModel(Base):
    """Unordered pair stored canonically with ``tag_a_id < tag_b_id``."""

    __tablename__ = "tag_similarities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tag_a_id = Column(String(36), ForeignKey("tags.id", ondelete="CASCADE"), nullable=False)
    tag_b_id = Column(String(36), ForeignKey("tags.id", ondelete="CASCADE"), nullable=False)
    similarity = Column(Float, nullable=False)

    tag_a = relationship("TagModel", foreign_keys=[tag_a_id])
    tag_b = relationship("TagModel", foreign_keys=[tag_b_id])

    __table_args__ = (
        UniqueConstraint("tag_a_id", "tag_b_id", name="ux_similarity_pair"),
        CheckConstraint("tag_a_id < tag_b_id", name="ck_similarity_canonical_order"),
        CheckConstraint("similarity >= 0 AND similarity <= 1", name="ck_similarity_range"),
        Index("ix_similarity_tag_b", "tag_b_id"),
    )


class UserTagModel(Base):
    __tablename__ = "user_tags"

    user_id = Column(String(64), primary_key=True)
    tag_id = Column(String(36), ForeignKey("tags.id"), primary_key=True)
    priority = Column(Integer, nullable=False)

    tag = relationship("TagModel")

    __table_args__ = (
        UniqueConstraint("user_id", "priority", name="ux_user_tag_priority"),
        CheckConstraint("priority >= 1", name="ck_user_tag_priority_positive"),
    )


class SupervisorModel(Base):
    __tablename__ = "supervisors"

    supervisor_id = Column(String(64), primary_key=True)
    bio = Column(Text, nullable=True)
    total_spots = Column(Integer, nullable=False, default=0)
    available_spots = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("total_spots >= 0", name="ck_supervisor_total_non_negative"),
        CheckConstraint("available_spots >= 0", name="ck_supervisor_available_non_negative"),
        CheckConstraint("available_spots <= total_spots", name="ck_supervisor_available_within_total"),
    )


class SupervisionRequestModel(Base):
    __tablename__ = "supervision_requests"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    student_id = Column(String(64), nullable=False)
    supervisor_id = Column(String(64), ForeignKey("supervisors.supervisor_id"), nullable=False)
    state = Column(
        Enum(*_REQUEST_STATES, name="request_state", native_enum=False),
        nullable=False,
        default=RequestState.PENDING.value,
    )
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    supervisor = relationship("SupervisorModel")

    __table_args__ = (
        Index(
            "ux_request_pending_pair",
            "student_id",
            "supervisor_id",
            unique=True,
            sqlite_where=text("state = 'PENDING'"),
            postgresql_where=text("state = 'PENDING'"),
        ),
        Index(
            "ux_request_accepted_student",
            "student_id",
            unique=True,
            sqlite_where=text("state = 'ACCEPTED'"),
            postgresql_where=text("state = 'ACCEPTED'"),
        ),
        Index("ix_request_supervisor_state", "supervisor_id", "state"),
        Index("ix_request_student_state", "student_id", "state"),
    )


class CapacityReservationModel(Base):
    """One held spot per accepted request; makes release idempotent."""

    __tablename__ = "capacity_reservations"

    request_id = Column(String(36), ForeignKey("supervision_requests.id"), primary_key=True)
    supervisor_id = Column(String(64), ForeignKey("supervisors.supervisor_id"), nullable=False)
    reserved_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("ix_reservation_supervisor", "supervisor_id"),)


class RequestEventModel(Base):
    """Append-only audit trail of request transitions and capacity deltas."""

    __tablename__ = "request_events"

    sequence = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(String(36), nullable=False, unique=True)
    request_id = Column(String(36), ForeignKey("supervision_requests.id"), nullable=False)
    event_type = Column(String(64), nullable=False)
    from_state = Column(String(16), nullable=True)
    to_state = Column(String(16), nullable=False)
    capacity_delta = Column(Integer, nullable=False, default=0)
    occurred_at = Column(DateTime(timezone=True), nullable=False)
    payload_json = Column(Text, nullable=False)

    __table_args__ = (
        CheckConstraint("capacity_delta IN (-1, 0, 1)", name="ck_event_capacity_delta"),
        Index("ix_event_request", "request_id", "sequence"),
    )


__all__ = [
    "Base",
    "CapacityReservationModel",
    "RequestEventModel",
    "SupervisionRequestModel",
    "SupervisorModel",
    "TagModel",
    "TagSimilarityModel",
    "UserTagModel",
]
