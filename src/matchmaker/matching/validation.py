"""Explicit precondition checks run before any core mutation.

Every function here is pure and returns a :class:`ValidationOutcome`; callers
decide whether to raise via :meth:`ValidationOutcome.raise_for_issues`.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple

from matchmaker.domain.errors import ValidationError, ValidationIssue

from .contracts import PriorityEntry, SimilarityInput


@dataclass(frozen=True, slots=True)
class ValidationOutcome:
    """Typed success/failure result of a validation pass."""

    issues: Tuple[ValidationIssue, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.issues

    def raise_for_issues(self) -> None:
        if self.issues:
            raise ValidationError(self.issues)

    @classmethod
    def from_issues(cls, issues: Iterable[ValidationIssue]) -> "ValidationOutcome":
        return cls(issues=tuple(issues))


def normalize_tag_name(value: str) -> str:
    return " ".join(value.split())


def validate_score(value: float, *, field: str) -> List[ValidationIssue]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return [ValidationIssue("SCORE_NOT_NUMERIC", f"{field} must be a number", field)]
    if math.isnan(value) or value < 0.0 or value > 1.0:
        return [ValidationIssue("SCORE_OUT_OF_RANGE", f"{field}={value} is outside [0, 1]", field)]
    return []


def validate_tag_import(
    tags: Sequence[str], similarities: Sequence[SimilarityInput]
) -> ValidationOutcome:
    """Check an administrative tag import as a whole."""

    issues: List[ValidationIssue] = []
    known: set[str] = set()
    for index, raw in enumerate(tags):
        name = normalize_tag_name(raw) if isinstance(raw, str) else ""
        if not name:
            issues.append(ValidationIssue("TAG_NAME_BLANK", f"tag #{index} has an empty name", f"tags[{index}]"))
            continue
        if name in known:
            issues.append(ValidationIssue("TAG_NAME_DUPLICATE", f"tag '{name}' is listed twice", f"tags[{index}]"))
            continue
        known.add(name)

    seen_pairs: set[frozenset[str]] = set()
    for index, row in enumerate(similarities):
        prefix = f"similarities[{index}]"
        first = normalize_tag_name(row.field1)
        second = normalize_tag_name(row.field2)
        missing = [name for name in (first, second) if name not in known]
        for name in dict.fromkeys(missing):
            issues.append(
                ValidationIssue("TAG_NOT_IN_IMPORT", f"tag '{name}' not found in provided tags list", prefix)
            )
        if first == second:
            issues.append(ValidationIssue("SELF_SIMILARITY", f"tag '{first}' cannot be paired with itself", prefix))
        else:
            pair = frozenset((first, second))
            if pair in seen_pairs:
                issues.append(
                    ValidationIssue("DUPLICATE_PAIR", f"pair '{first}'/'{second}' occurs more than once", prefix)
                )
            seen_pairs.add(pair)
        issues.extend(validate_score(row.similarity_score, field=f"{prefix}.similarity_score"))
    return ValidationOutcome.from_issues(issues)


def validate_priorities(entries: Sequence[PriorityEntry]) -> ValidationOutcome:
    """Priorities must be a contiguous 1..N permutation over distinct tags."""

    issues: List[ValidationIssue] = []
    seen_tags: set[str] = set()
    for index, entry in enumerate(entries):
        if not entry.tag_id:
            issues.append(ValidationIssue("TAG_ID_BLANK", f"entry #{index} has no tag id", f"tags[{index}]"))
        elif entry.tag_id in seen_tags:
            issues.append(
                ValidationIssue("TAG_DUPLICATE", f"tag {entry.tag_id} appears more than once", f"tags[{index}]")
            )
        seen_tags.add(entry.tag_id)
        if isinstance(entry.priority, bool) or not isinstance(entry.priority, int) or entry.priority < 1:
            issues.append(
                ValidationIssue("PRIORITY_INVALID", f"priority {entry.priority!r} must be a positive integer", f"tags[{index}]")
            )
    if issues:
        return ValidationOutcome.from_issues(issues)

    priorities = sorted(entry.priority for entry in entries)
    expected = list(range(1, len(entries) + 1))
    if priorities != expected:
        issues.append(
            ValidationIssue(
                "PRIORITY_NOT_PERMUTATION",
                f"priorities {priorities} must be exactly 1..{len(entries)} without gaps or duplicates",
                "tags",
            )
        )
    return ValidationOutcome.from_issues(issues)


def validate_min_similarity(value: float) -> ValidationOutcome:
    return ValidationOutcome.from_issues(validate_score(value, field="min_similarity"))


def validate_capacity(total_spots: int, available_spots: int | None = None) -> ValidationOutcome:
    issues: List[ValidationIssue] = []
    if isinstance(total_spots, bool) or not isinstance(total_spots, int) or total_spots < 0:
        issues.append(ValidationIssue("TOTAL_SPOTS_INVALID", f"total_spots={total_spots!r} must be >= 0", "total_spots"))
    elif available_spots is not None and not 0 <= available_spots <= total_spots:
        issues.append(
            ValidationIssue(
                "AVAILABLE_SPOTS_INVALID",
                f"available_spots={available_spots} must lie within [0, {total_spots}]",
                "available_spots",
            )
        )
    return ValidationOutcome.from_issues(issues)


__all__ = [
    "ValidationOutcome",
    "normalize_tag_name",
    "validate_capacity",
    "validate_min_similarity",
    "validate_priorities",
    "validate_score",
    "validate_tag_import",
]
