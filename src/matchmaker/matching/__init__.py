"""Tag graph, compatibility scoring and supervisor ranking."""

from .contracts import (
    PriorityEntry,
    PriorityProfile,
    RankedSupervisor,
    RankingOptions,
    SimilarityInput,
    SupervisorCandidate,
    Tag,
    TagSimilarity,
)
from .ranker import Ranking, SupervisorRanker, ranking_key
from .scorer import compatibility_score, pair_weight
from .tag_graph import TagGraph, TagGraphStore
from .validation import ValidationOutcome, validate_priorities, validate_tag_import

__all__ = [
    "PriorityEntry",
    "PriorityProfile",
    "RankedSupervisor",
    "Ranking",
    "RankingOptions",
    "SimilarityInput",
    "SupervisorCandidate",
    "SupervisorRanker",
    "Tag",
    "TagGraph",
    "TagGraphStore",
    "TagSimilarity",
    "ValidationOutcome",
    "compatibility_score",
    "pair_weight",
    "ranking_key",
    "validate_priorities",
    "validate_tag_import",
]
