"""Supervisor ranking for a single student."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from time import perf_counter
from typing import Iterator, List, Sequence, Tuple

from matchmaker.infrastructure.monitoring.metrics import ranking_duration_seconds

from .contracts import PriorityProfile, RankedSupervisor, RankingOptions, SupervisorCandidate
from .scorer import SimilaritySource, compatibility_score

logger = logging.getLogger(__name__)


def ranking_key(row: RankedSupervisor) -> Tuple[float, int, str]:
    """Score descending, then available spots descending, then id ascending."""

    return (-row.score, -row.available_spots, row.supervisor_id)


@dataclass(frozen=True)
class Ranking:
    """Restartable ranked sequence.

    Nothing is scored until iteration starts and every iteration recomputes
    from the same frozen inputs, so two passes always yield the same order.
    """

    student: PriorityProfile
    candidates: Tuple[SupervisorCandidate, ...]
    graph: SimilaritySource
    options: RankingOptions

    def __iter__(self) -> Iterator[RankedSupervisor]:
        started = perf_counter()
        rows = self._score_all()
        rows.sort(key=ranking_key)
        if self.options.limit is not None:
            rows = rows[: self.options.limit]
        ranking_duration_seconds.observe(perf_counter() - started)
        return iter(rows)

    def _score_all(self) -> List[RankedSupervisor]:
        rows: List[RankedSupervisor] = []
        for candidate in self.candidates:
            if candidate.supervisor_id in self.options.excluded_supervisors:
                continue
            if self.options.available_only and candidate.available_spots <= 0:
                continue
            score = compatibility_score(self.student, candidate.profile, self.graph)
            rows.append(
                RankedSupervisor(
                    supervisor_id=candidate.supervisor_id,
                    score=score,
                    pending_requests=candidate.pending_requests,
                    available_spots=candidate.available_spots,
                    total_spots=candidate.total_spots,
                    tags=candidate.tags,
                    bio=candidate.bio,
                )
            )
        return rows


class SupervisorRanker:
    """Orders candidate supervisors for one student over a graph snapshot."""

    def __init__(self, graph: SimilaritySource) -> None:
        self._graph = graph

    def rank(
        self,
        student: PriorityProfile,
        candidates: Sequence[SupervisorCandidate],
        options: RankingOptions | None = None,
    ) -> Ranking:
        options = options or RankingOptions()
        if not student:
            logger.debug(
                "student has no priority profile; all scores will be 0",
                extra={"code": "EMPTY_PROFILE", "student": student.user_id},
            )
        return Ranking(
            student=student,
            candidates=tuple(candidates),
            graph=self._graph,
            options=options,
        )


__all__ = ["Ranking", "SupervisorRanker", "ranking_key"]
