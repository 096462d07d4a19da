"""Supervisor recommendations for students."""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Sequence

from matchmaker.config.settings import MatchmakerSettings
from matchmaker.domain.errors import ValidationError, ValidationIssue
from matchmaker.lifecycle.uow import SQLAlchemyUnitOfWork, UnitOfWorkFactory, with_transaction
from matchmaker.matching.contracts import PriorityProfile, RankingOptions, SupervisorCandidate
from matchmaker.matching.ranker import SupervisorRanker
from matchmaker.matching.tag_graph import TagGraph, TagGraphStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class _CandidatePool:
    student: PriorityProfile
    candidates: tuple[SupervisorCandidate, ...]
    decided: frozenset[str]


class RecommendationService:
    """Scores every supervisor for a student over one graph snapshot."""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        store: TagGraphStore,
        *,
        exclude_decided: bool = True,
        workers: int = 4,
    ) -> None:
        self._uow_factory = uow_factory
        self._store = store
        self._exclude_decided = exclude_decided
        self._workers = workers

    @classmethod
    def from_settings(
        cls, uow_factory: UnitOfWorkFactory, store: TagGraphStore, settings: MatchmakerSettings
    ) -> "RecommendationService":
        return cls(
            uow_factory,
            store,
            exclude_decided=settings.exclude_decided_supervisors,
            workers=settings.recommendation_workers,
        )

    def recommend(
        self, student_id: str, available_only: bool = False, limit: int | None = None
    ) -> List[dict[str, object]]:
        if not student_id or not student_id.strip():
            raise ValidationError([ValidationIssue("ID_BLANK", "student_id must not be empty", "student_id")])
        if limit is not None and limit < 1:
            raise ValidationError([ValidationIssue("LIMIT_INVALID", f"limit={limit} must be >= 1", "limit")])

        graph = self._store.snapshot()
        pool = with_transaction(self._uow_factory, lambda uow: self._load_pool(uow, student_id, graph))
        options = RankingOptions(
            available_only=available_only,
            excluded_supervisors=pool.decided,
            limit=limit,
        )
        rows = [row.as_payload() for row in SupervisorRanker(graph).rank(pool.student, pool.candidates, options)]
        logger.info(
            "recommendations computed",
            extra={"code": "RECOMMENDATIONS_READY", "student": student_id, "count": len(rows)},
        )
        return rows

    def recommend_many(
        self, student_ids: Sequence[str], available_only: bool = False, limit: int | None = None
    ) -> Dict[str, List[dict[str, object]]]:
        """Fan ``recommend`` out over a thread pool; result keeps input order."""

        with ThreadPoolExecutor(max_workers=self._workers) as pool:
            results = pool.map(lambda student_id: self.recommend(student_id, available_only, limit), student_ids)
            return dict(zip(student_ids, results))

    def _load_pool(self, uow: SQLAlchemyUnitOfWork, student_id: str, graph: TagGraph) -> _CandidatePool:
        supervisors = [row for row in uow.supervisors.list_all() if row.supervisor_id != student_id]
        requests = uow.requests
        profiles = uow.profiles.profiles([student_id, *(row.supervisor_id for row in supervisors)])
        pending = requests.pending_counts()
        decided = requests.decided_supervisors(student_id) if self._exclude_decided else set()

        candidates = []
        for row in supervisors:
            profile = profiles[row.supervisor_id]
            names = tuple(name for name in (graph.name_of(tag_id) for tag_id in profile.tag_ids) if name)
            candidates.append(
                SupervisorCandidate(
                    supervisor_id=row.supervisor_id,
                    profile=profile,
                    available_spots=row.available_spots,
                    total_spots=row.total_spots,
                    pending_requests=pending.get(row.supervisor_id, 0),
                    tags=names,
                    bio=row.bio,
                )
            )
        return _CandidatePool(student=profiles[student_id], candidates=tuple(candidates), decided=frozenset(decided))


__all__ = ["RecommendationService"]
