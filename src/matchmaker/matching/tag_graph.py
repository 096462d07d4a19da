"""Immutable tag-similarity snapshots and the store that swaps them."""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from threading import RLock
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping, Sequence, Tuple

from .contracts import SimilarityInput, Tag, TagSimilarity
from .validation import normalize_tag_name, validate_min_similarity, validate_tag_import

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TagGraph:
    """Consistent snapshot of tags and symmetric pairwise scores.

    Instances are never mutated after construction, so a reader holding a
    reference keeps seeing one whole graph while the store publishes another.
    """

    tags: Mapping[str, Tag] = field(default_factory=dict)
    scores: Mapping[FrozenSet[str], float] = field(default_factory=dict)
    _by_name: Mapping[str, Tag] = field(init=False, repr=False, compare=False)
    _adjacency: Mapping[str, Tuple[Tuple[str, float], ...]] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "tags", MappingProxyType(dict(self.tags)))
        object.__setattr__(self, "scores", MappingProxyType(dict(self.scores)))
        object.__setattr__(self, "_by_name", MappingProxyType({tag.name: tag for tag in self.tags.values()}))
        adjacency: Dict[str, List[Tuple[str, float]]] = {}
        for pair, score in self.scores.items():
            first, second = tuple(pair)
            adjacency.setdefault(first, []).append((second, score))
            adjacency.setdefault(second, []).append((first, score))
        object.__setattr__(
            self,
            "_adjacency",
            MappingProxyType({key: tuple(value) for key, value in adjacency.items()}),
        )

    @classmethod
    def build(cls, tags: Iterable[Tag], similarities: Iterable[TagSimilarity]) -> "TagGraph":
        return cls(
            tags={tag.id: tag for tag in tags},
            scores={item.key: float(item.score) for item in similarities},
        )

    def similarity(self, tag_a: str, tag_b: str) -> float:
        """Score for two tag ids: 1.0 for identity, 0.0 when unrelated."""

        if tag_a == tag_b:
            return 1.0
        return self.scores.get(frozenset((tag_a, tag_b)), 0.0)

    def tag_by_name(self, name: str) -> Tag | None:
        return self._by_name.get(normalize_tag_name(name))

    def name_of(self, tag_id: str) -> str | None:
        tag = self.tags.get(tag_id)
        return tag.name if tag else None

    def neighbours(self, tag_id: str, min_similarity: float = 0.0) -> List[Tuple[Tag, float]]:
        """Tags related to ``tag_id`` at or above the threshold, best first."""

        validate_min_similarity(min_similarity).raise_for_issues()
        rows = [
            (self.tags[other], score)
            for other, score in self._adjacency.get(tag_id, ())
            if score >= min_similarity and other in self.tags
        ]
        rows.sort(key=lambda row: (-row[1], row[0].name))
        return rows

    def similarity_rows(self) -> List[TagSimilarity]:
        rows = []
        for pair, score in self.scores.items():
            first, second = sorted(pair)
            rows.append(TagSimilarity(first, second, score))
        rows.sort(key=lambda row: (row.tag_a, row.tag_b))
        return rows

    def __len__(self) -> int:
        return len(self.tags)


class TagGraphStore:
    """Holds the current :class:`TagGraph` and replaces it all-or-nothing."""

    def __init__(self, graph: TagGraph | None = None) -> None:
        self._graph = graph or TagGraph()
        self._lock = RLock()

    def snapshot(self) -> TagGraph:
        with self._lock:
            return self._graph

    def similarity(self, tag_a: str, tag_b: str) -> float:
        return self.snapshot().similarity(tag_a, tag_b)

    def publish(self, graph: TagGraph) -> TagGraph:
        """Swap in an already validated graph and return the previous one."""

        with self._lock:
            previous, self._graph = self._graph, graph
        logger.info(
            "tag graph published",
            extra={"code": "TAG_GRAPH_PUBLISHED", "tags": len(graph.tags), "pairs": len(graph.scores)},
        )
        return previous

    def bulk_replace(
        self, tags: Sequence[str], similarities: Sequence[SimilarityInput]
    ) -> TagGraph:
        """Validate a name-based import and atomically replace the graph.

        Existing tags keep their ids; unseen names get fresh ids. Tags absent
        from ``tags`` stay in the graph, similarities are replaced wholesale.
        On a validation failure :class:`ValidationError` is raised and the
        current graph is left untouched.
        """

        validate_tag_import(tags, similarities).raise_for_issues()
        with self._lock:
            current = self._graph
            merged: Dict[str, Tag] = dict(current.tags)
            by_name = {tag.name: tag for tag in merged.values()}
            for raw in tags:
                name = normalize_tag_name(raw)
                if name not in by_name:
                    tag = Tag(id=str(uuid.uuid4()), name=name)
                    merged[tag.id] = tag
                    by_name[name] = tag
            rows = [
                TagSimilarity(
                    by_name[normalize_tag_name(item.field1)].id,
                    by_name[normalize_tag_name(item.field2)].id,
                    float(item.similarity_score),
                )
                for item in similarities
            ]
            graph = TagGraph.build(merged.values(), rows)
            self._graph = graph
        logger.info(
            "tag graph replaced",
            extra={"code": "TAG_GRAPH_REPLACED", "tags": len(graph.tags), "pairs": len(graph.scores)},
        )
        return graph


__all__ = ["TagGraph", "TagGraphStore"]
