from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from matchmaker.domain.errors import ValidationError
from matchmaker.matching.contracts import SimilarityInput, Tag, TagSimilarity
from matchmaker.matching.tag_graph import TagGraph, TagGraphStore


def _graph() -> TagGraph:
    tags = [Tag("t-ai", "AI"), Tag("t-ml", "ML"), Tag("t-db", "Databases")]
    return TagGraph.build(tags, [TagSimilarity("t-ai", "t-ml", 0.8), TagSimilarity("t-db", "t-ml", 0.3)])


def test_similarity_is_symmetric_and_reflexive() -> None:
    graph = _graph()
    assert graph.similarity("t-ai", "t-ml") == graph.similarity("t-ml", "t-ai") == 0.8
    assert graph.similarity("t-db", "t-db") == 1.0
    assert graph.similarity("t-ai", "t-db") == 0.0
    assert graph.similarity("t-ai", "unknown") == 0.0


def test_neighbours_sorted_and_thresholded() -> None:
    graph = _graph()
    rows = graph.neighbours("t-ml")
    assert [(tag.name, score) for tag, score in rows] == [("AI", 0.8), ("Databases", 0.3)]
    assert [tag.name for tag, _ in graph.neighbours("t-ml", min_similarity=0.5)] == ["AI"]
    assert graph.neighbours("t-none") == []


def test_neighbours_rejects_threshold_out_of_range() -> None:
    with pytest.raises(ValidationError) as excinfo:
        _graph().neighbours("t-ml", min_similarity=1.5)
    assert excinfo.value.issues[0].code == "SCORE_OUT_OF_RANGE"


def test_tag_lookup_by_name_collapses_whitespace() -> None:
    graph = _graph()
    assert graph.tag_by_name("  AI ").id == "t-ai"
    assert graph.name_of("t-db") == "Databases"
    assert graph.name_of("t-x") is None


def test_bulk_replace_keeps_ids_and_replaces_pairs() -> None:
    store = TagGraphStore()
    first = store.bulk_replace(["AI", "ML"], [SimilarityInput("AI", "ML", 0.8)])
    ai_id = first.tag_by_name("AI").id

    second = store.bulk_replace(["AI", "Design"], [SimilarityInput("Design", "AI", 0.4)])
    assert second.tag_by_name("AI").id == ai_id
    # tags missing from the import are kept, similarities are not
    assert second.tag_by_name("ML") is not None
    ml_id = second.tag_by_name("ML").id
    assert second.similarity(ai_id, ml_id) == 0.0
    assert second.similarity(second.tag_by_name("Design").id, ai_id) == 0.4
    assert store.snapshot() is second


@pytest.mark.parametrize(
    "tags, similarities, code",
    [
        (["AI", "ML"], [SimilarityInput("AI", "Robotics", 0.5)], "TAG_NOT_IN_IMPORT"),
        (["AI", "ML"], [SimilarityInput("AI", "ML", 1.2)], "SCORE_OUT_OF_RANGE"),
        (["AI", "ML"], [SimilarityInput("AI", "AI", 0.5)], "SELF_SIMILARITY"),
        (
            ["AI", "ML"],
            [SimilarityInput("AI", "ML", 0.5), SimilarityInput("ML", "AI", 0.6)],
            "DUPLICATE_PAIR",
        ),
        (["AI", "AI"], [], "TAG_NAME_DUPLICATE"),
        (["AI", "  "], [], "TAG_NAME_BLANK"),
    ],
)
def test_failed_import_leaves_graph_unchanged(tags, similarities, code) -> None:
    store = TagGraphStore()
    before = store.bulk_replace(["AI", "ML"], [SimilarityInput("AI", "ML", 0.8)])

    with pytest.raises(ValidationError) as excinfo:
        store.bulk_replace(tags, similarities)

    assert code in {issue.code for issue in excinfo.value.issues}
    assert store.snapshot() is before
    ai, ml = before.tag_by_name("AI").id, before.tag_by_name("ML").id
    assert store.similarity(ai, ml) == 0.8


def test_readers_never_observe_partial_graph() -> None:
    store = TagGraphStore()
    store.bulk_replace(["A", "B"], [SimilarityInput("A", "B", 0.5)])

    def writer(round_no: int) -> None:
        score = 0.1 if round_no % 2 else 0.9
        store.bulk_replace(["A", "B", "C"], [SimilarityInput("A", "B", score), SimilarityInput("B", "C", score)])

    def reader(_: int) -> bool:
        graph = store.snapshot()
        a, b = graph.tag_by_name("A"), graph.tag_by_name("B")
        c = graph.tag_by_name("C")
        if c is None:
            return graph.similarity(a.id, b.id) == 0.5
        return graph.similarity(a.id, b.id) == graph.similarity(b.id, c.id)

    with ThreadPoolExecutor(max_workers=8) as pool:
        writes = [pool.submit(writer, n) for n in range(20)]
        reads = list(pool.map(reader, range(200)))
        for future in writes:
            future.result()

    assert all(reads)
