# -*- coding: utf-8 -*-
from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from matchmaker.domain.states import DECIDED_STATES, RequestState
from matchmaker.matching.contracts import PriorityEntry, PriorityProfile, Tag, TagSimilarity
from matchmaker.matching.tag_graph import TagGraph

from .models import (
    SupervisionRequestModel,
    SupervisorModel,
    TagModel,
    TagSimilarityModel,
    UserTagModel,
)


class TagRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def by_names(self, names: Iterable[str]) -> Dict[str, TagModel]:
        stmt = select(TagModel).where(TagModel.name.in_(list(names)))
        return {row.name: row for row in self._session.execute(stmt).scalars()}

    def existing_ids(self, tag_ids: Iterable[str]) -> set[str]:
        stmt = select(TagModel.id).where(TagModel.id.in_(list(tag_ids)))
        return set(self._session.execute(stmt).scalars())

    def add_missing(self, names: Sequence[str]) -> Dict[str, TagModel]:
        """Insert unknown names and return every requested tag by name."""

        existing = self.by_names(names)
        for name in names:
            if name not in existing:
                model = TagModel(name=name)
                self._session.add(model)
                existing[name] = model
        self._session.flush()
        return existing

    def replace_similarities(self, rows: Sequence[TagSimilarity]) -> int:
        self._session.execute(delete(TagSimilarityModel))
        for row in rows:
            first, second = sorted((row.tag_a, row.tag_b))
            self._session.add(TagSimilarityModel(tag_a_id=first, tag_b_id=second, similarity=row.score))
        self._session.flush()
        return len(rows)

    def load_graph(self) -> TagGraph:
        tags = [Tag(id=row.id, name=row.name) for row in self._session.execute(select(TagModel)).scalars()]
        similarities = [
            TagSimilarity(row.tag_a_id, row.tag_b_id, row.similarity)
            for row in self._session.execute(select(TagSimilarityModel)).scalars()
        ]
        return TagGraph.build(tags, similarities)


class UserTagRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def profile(self, user_id: str) -> PriorityProfile:
        return self.profiles([user_id]).get(user_id, PriorityProfile(user_id=user_id))

    def profiles(self, user_ids: Iterable[str]) -> Dict[str, PriorityProfile]:
        ids = list(user_ids)
        stmt = select(UserTagModel).where(UserTagModel.user_id.in_(ids))
        grouped: Dict[str, List[PriorityEntry]] = {user_id: [] for user_id in ids}
        for row in self._session.execute(stmt).scalars():
            grouped[row.user_id].append(PriorityEntry(tag_id=row.tag_id, priority=row.priority))
        return {user_id: PriorityProfile(user_id=user_id, entries=tuple(entries)) for user_id, entries in grouped.items()}

    def replace(self, user_id: str, entries: Sequence[PriorityEntry]) -> None:
        self._session.execute(delete(UserTagModel).where(UserTagModel.user_id == user_id))
        self._session.flush()
        for entry in entries:
            self._session.add(UserTagModel(user_id=user_id, tag_id=entry.tag_id, priority=entry.priority))
        self._session.flush()


class SupervisorRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, supervisor_id: str) -> SupervisorModel | None:
        return self._session.get(SupervisorModel, supervisor_id)

    def list_all(self) -> List[SupervisorModel]:
        stmt = select(SupervisorModel).order_by(SupervisorModel.supervisor_id).execution_options(
            populate_existing=True
        )
        return list(self._session.execute(stmt).scalars())

    def set_bio(self, supervisor_id: str, bio: str) -> None:
        self._session.execute(
            update(SupervisorModel)
            .where(SupervisorModel.supervisor_id == supervisor_id)
            .values(bio=bio)
            .execution_options(synchronize_session=False)
        )


class SupervisionRequestRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, request_id: str) -> SupervisionRequestModel | None:
        return self._session.get(SupervisionRequestModel, request_id, populate_existing=True)

    def add(self, model: SupervisionRequestModel) -> None:
        self._session.add(model)
        self._session.flush()

    def compare_and_set_state(
        self,
        request_id: str,
        *,
        expected: RequestState,
        target: RequestState,
        updated_at: datetime,
    ) -> bool:
        """Move the row only if it still holds ``expected``; report success."""

        stmt = (
            update(SupervisionRequestModel)
            .where(
                SupervisionRequestModel.id == request_id,
                SupervisionRequestModel.state == expected.value,
            )
            .values(state=target.value, updated_at=updated_at)
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(stmt).rowcount == 1

    def latest_for_pair(self, student_id: str, supervisor_id: str) -> SupervisionRequestModel | None:
        stmt = (
            select(SupervisionRequestModel)
            .where(
                SupervisionRequestModel.student_id == student_id,
                SupervisionRequestModel.supervisor_id == supervisor_id,
            )
            .order_by(SupervisionRequestModel.updated_at.desc(), SupervisionRequestModel.created_at.desc())
            .limit(1)
        )
        return self._session.execute(stmt).scalars().first()

    def find(
        self,
        *,
        student_id: str | None = None,
        supervisor_id: str | None = None,
        state: RequestState | None = None,
        exclude_id: str | None = None,
    ) -> List[SupervisionRequestModel]:
        stmt = select(SupervisionRequestModel)
        if student_id is not None:
            stmt = stmt.where(SupervisionRequestModel.student_id == student_id)
        if supervisor_id is not None:
            stmt = stmt.where(SupervisionRequestModel.supervisor_id == supervisor_id)
        if state is not None:
            stmt = stmt.where(SupervisionRequestModel.state == state.value)
        if exclude_id is not None:
            stmt = stmt.where(SupervisionRequestModel.id != exclude_id)
        stmt = stmt.order_by(SupervisionRequestModel.updated_at.desc(), SupervisionRequestModel.id).execution_options(
            populate_existing=True
        )
        return list(self._session.execute(stmt).scalars())

    def count(
        self,
        *,
        student_id: str | None = None,
        supervisor_id: str | None = None,
        state: RequestState | None = None,
    ) -> int:
        stmt = select(func.count()).select_from(SupervisionRequestModel)
        if student_id is not None:
            stmt = stmt.where(SupervisionRequestModel.student_id == student_id)
        if supervisor_id is not None:
            stmt = stmt.where(SupervisionRequestModel.supervisor_id == supervisor_id)
        if state is not None:
            stmt = stmt.where(SupervisionRequestModel.state == state.value)
        return int(self._session.execute(stmt).scalar_one())

    def pending_counts(self) -> Mapping[str, int]:
        stmt = (
            select(SupervisionRequestModel.supervisor_id, func.count())
            .where(SupervisionRequestModel.state == RequestState.PENDING.value)
            .group_by(SupervisionRequestModel.supervisor_id)
        )
        return {supervisor_id: int(count) for supervisor_id, count in self._session.execute(stmt)}

    def decided_supervisors(self, student_id: str) -> set[str]:
        stmt = select(SupervisionRequestModel.supervisor_id).where(
            SupervisionRequestModel.student_id == student_id,
            SupervisionRequestModel.state.in_(sorted(state.value for state in DECIDED_STATES)),
        )
        return set(self._session.execute(stmt).scalars())


__all__ = [
    "SupervisionRequestRepository",
    "SupervisorRepository",
    "TagRepository",
    "UserTagRepository",
]
