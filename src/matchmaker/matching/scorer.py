"""Compatibility scoring between a student and a supervisor profile."""
from __future__ import annotations

from typing import Protocol

from .contracts import PriorityProfile


class SimilaritySource(Protocol):
    def similarity(self, tag_a: str, tag_b: str) -> float:
        """Return the score of two tag ids."""


def pair_weight(student_priority: int, supervisor_priority: int) -> float:
    """Lower priority numbers weigh more on both sides."""

    return 1.0 / student_priority + 1.0 / supervisor_priority


def compatibility_score(
    student: PriorityProfile,
    supervisor: PriorityProfile,
    graph: SimilaritySource,
) -> float:
    """Weighted mean similarity over all related tag pairs, in ``[0, 1]``.

    Each (student tag, supervisor tag) pair with a positive similarity
    contributes ``w * similarity`` where ``w = 1/p_s + 1/p_t``; the sum is
    normalised by the total weight of those same pairs. Unrelated pairs do
    not dilute the score and a profile pair without any related tags scores
    0. Profiles keep their entries canonically ordered, so the accumulation
    order and therefore the float result do not depend on input order.
    """

    weighted = 0.0
    total_weight = 0.0
    for student_entry in student.entries:
        for supervisor_entry in supervisor.entries:
            similarity = graph.similarity(student_entry.tag_id, supervisor_entry.tag_id)
            if similarity <= 0.0:
                continue
            weight = pair_weight(student_entry.priority, supervisor_entry.priority)
            weighted += weight * similarity
            total_weight += weight
    if total_weight == 0.0:
        return 0.0
    return max(0.0, min(1.0, weighted / total_weight))


__all__ = ["SimilaritySource", "compatibility_score", "pair_weight"]
