from __future__ import annotations

from matchmaker.matching.contracts import (
    PriorityEntry,
    PriorityProfile,
    RankingOptions,
    SupervisorCandidate,
    Tag,
    TagSimilarity,
)
from matchmaker.matching.ranker import SupervisorRanker
from matchmaker.matching.tag_graph import TagGraph

GRAPH = TagGraph.build(
    [Tag("ai", "AI"), Tag("ml", "ML"), Tag("db", "Databases")],
    [TagSimilarity("ai", "ml", 0.8), TagSimilarity("ai", "db", 0.2)],
)
STUDENT = PriorityProfile("student", (PriorityEntry("ai", 1),))


def candidate(supervisor_id: str, tag_id: str | None, available: int, total: int = 3) -> SupervisorCandidate:
    entries = (PriorityEntry(tag_id, 1),) if tag_id else ()
    return SupervisorCandidate(
        supervisor_id=supervisor_id,
        profile=PriorityProfile(supervisor_id, entries),
        available_spots=available,
        total_spots=total,
    )


def test_orders_by_score_then_spots_then_id() -> None:
    candidates = [
        candidate("sup-c", "ml", 1),
        candidate("sup-b", "ml", 2),
        candidate("sup-a", "ml", 1),
        candidate("sup-d", "ai", 0),
        candidate("sup-e", "db", 3),
    ]
    rows = list(SupervisorRanker(GRAPH).rank(STUDENT, candidates))
    assert [row.supervisor_id for row in rows] == ["sup-d", "sup-b", "sup-a", "sup-c", "sup-e"]
    assert rows[0].is_full is True
    assert rows[0].score == 1.0


def test_ranking_is_restartable_and_deterministic() -> None:
    candidates = [candidate(f"sup-{n}", "ml" if n % 2 else "db", n % 3) for n in range(10)]
    ranking = SupervisorRanker(GRAPH).rank(STUDENT, candidates)
    first = list(ranking)
    second = list(ranking)
    assert first == second
    reversed_input = list(SupervisorRanker(GRAPH).rank(STUDENT, list(reversed(candidates))))
    assert reversed_input == first


def test_available_only_exclusion_and_limit() -> None:
    candidates = [candidate("full", "ai", 0), candidate("open", "ml", 1), candidate("done", "ai", 2)]
    options = RankingOptions(available_only=True, excluded_supervisors=frozenset({"done"}))
    rows = list(SupervisorRanker(GRAPH).rank(STUDENT, candidates, options))
    assert [row.supervisor_id for row in rows] == ["open"]

    limited = list(SupervisorRanker(GRAPH).rank(STUDENT, candidates, RankingOptions(limit=2)))
    assert [row.supervisor_id for row in limited] == ["done", "full"]


def test_empty_student_profile_ranks_everyone_at_zero() -> None:
    rows = list(SupervisorRanker(GRAPH).rank(PriorityProfile("nobody"), [candidate("b", "ml", 1), candidate("a", None, 1)]))
    assert [(row.supervisor_id, row.score) for row in rows] == [("a", 0.0), ("b", 0.0)]


def test_payload_shape() -> None:
    [row] = list(SupervisorRanker(GRAPH).rank(STUDENT, [candidate("sup", "ml", 0, total=2)]))
    assert row.as_payload() == {
        "supervisorId": "sup",
        "bio": None,
        "compatibilityScore": 0.8,
        "availableSpots": 0,
        "totalSpots": 2,
        "pendingRequests": 0,
        "tags": [],
        "isFull": True,
    }
