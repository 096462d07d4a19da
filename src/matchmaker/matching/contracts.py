"""Core value objects for tag matching and ranking."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Tuple


@dataclass(frozen=True, slots=True)
class Tag:
    """Labeled interest area, unique by name."""

    id: str
    name: str


@dataclass(frozen=True, slots=True)
class TagSimilarity:
    """Similarity score for an unordered tag pair."""

    tag_a: str
    tag_b: str
    score: float

    @property
    def key(self) -> FrozenSet[str]:
        return frozenset((self.tag_a, self.tag_b))


@dataclass(frozen=True, slots=True)
class SimilarityInput:
    """Name-based similarity row as delivered by the administrative import."""

    field1: str
    field2: str
    similarity_score: float


@dataclass(frozen=True, slots=True)
class PriorityEntry:
    """One (tag, priority) pair; priority 1 is the most important."""

    tag_id: str
    priority: int


@dataclass(frozen=True, slots=True)
class PriorityProfile:
    """Ordered tag preferences of a single user."""

    user_id: str
    entries: Tuple[PriorityEntry, ...] = ()

    def __post_init__(self) -> None:
        ordered = tuple(sorted(self.entries, key=lambda entry: (entry.priority, entry.tag_id)))
        object.__setattr__(self, "entries", ordered)

    @property
    def tag_ids(self) -> Tuple[str, ...]:
        return tuple(entry.tag_id for entry in self.entries)

    def __bool__(self) -> bool:
        return bool(self.entries)


@dataclass(frozen=True, slots=True)
class SupervisorCandidate:
    """Snapshot of a supervisor as seen by the ranker."""

    supervisor_id: str
    profile: PriorityProfile
    available_spots: int
    total_spots: int
    pending_requests: int = 0
    tags: Tuple[str, ...] = field(default_factory=tuple)
    bio: str | None = None


@dataclass(frozen=True, slots=True)
class RankedSupervisor:
    """Ranker output row."""

    supervisor_id: str
    score: float
    pending_requests: int
    available_spots: int
    total_spots: int
    tags: Tuple[str, ...] = ()
    bio: str | None = None

    @property
    def is_full(self) -> bool:
        return self.available_spots <= 0

    def as_payload(self) -> dict[str, object]:
        """Render the presentation-layer shape of a recommendation."""

        return {
            "supervisorId": self.supervisor_id,
            "bio": self.bio,
            "compatibilityScore": self.score,
            "availableSpots": self.available_spots,
            "totalSpots": self.total_spots,
            "pendingRequests": self.pending_requests,
            "tags": list(self.tags),
            "isFull": self.is_full,
        }


@dataclass(frozen=True, slots=True)
class RankingOptions:
    """Filters applied by the ranker."""

    available_only: bool = False
    excluded_supervisors: FrozenSet[str] = frozenset()
    limit: int | None = None


__all__ = [
    "PriorityEntry",
    "PriorityProfile",
    "RankedSupervisor",
    "RankingOptions",
    "SimilarityInput",
    "SupervisorCandidate",
    "Tag",
    "TagSimilarity",
]
