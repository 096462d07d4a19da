# -*- coding: utf-8 -*-
"""Payload DTOs for administrative imports and profile updates."""
from __future__ import annotations

from typing import Any, List, Mapping, Type, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from matchmaker.domain.errors import ValidationError, ValidationIssue

from .contracts import PriorityEntry, SimilarityInput
from .validation import normalize_tag_name

ModelT = TypeVar("ModelT", bound=BaseModel)


class SimilarityItem(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True, str_strip_whitespace=True)

    field1: str = Field(validation_alias=AliasChoices("field1", "tagA", "tag_a"))
    field2: str = Field(validation_alias=AliasChoices("field2", "tagB", "tag_b"))
    similarity_score: float = Field(validation_alias=AliasChoices("similarity_score", "similarityScore", "score"))

    def to_input(self) -> SimilarityInput:
        return SimilarityInput(
            field1=normalize_tag_name(self.field1),
            field2=normalize_tag_name(self.field2),
            similarity_score=self.similarity_score,
        )


class TagsBulkImport(BaseModel):
    """``{tags: [...], similarities: [...]}`` as sent by the admin import."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    tags: List[str]
    similarities: List[SimilarityItem] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    @classmethod
    def _strip_tags(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [normalize_tag_name(item) if isinstance(item, str) else item for item in value]
        return value

    def similarity_inputs(self) -> List[SimilarityInput]:
        return [item.to_input() for item in self.similarities]


class TagPriorityItem(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True, str_strip_whitespace=True)

    tag_id: str = Field(validation_alias=AliasChoices("tag_id", "tagId"))
    priority: int


class PriorityUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True, str_strip_whitespace=True)

    user_id: str = Field(min_length=1, validation_alias=AliasChoices("userId", "user_id"))
    tags: List[TagPriorityItem] = Field(default_factory=list)

    def entries(self) -> List[PriorityEntry]:
        return [PriorityEntry(tag_id=item.tag_id, priority=item.priority) for item in self.tags]


class SupervisorCapacityItem(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True, str_strip_whitespace=True)

    supervisor_id: str = Field(min_length=1, validation_alias=AliasChoices("supervisor_id", "supervisorId"))
    total_spots: int = Field(ge=0, validation_alias=AliasChoices("total_spots", "totalSpots"))
    bio: str | None = None


class SupervisorsBulkImport(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    supervisors: List[SupervisorCapacityItem]

    @field_validator("supervisors")
    @classmethod
    def _unique_ids(cls, value: List[SupervisorCapacityItem]) -> List[SupervisorCapacityItem]:
        seen: set[str] = set()
        for item in value:
            if item.supervisor_id in seen:
                raise ValueError(f"supervisor {item.supervisor_id} listed twice")
            seen.add(item.supervisor_id)
        return value


def parse_payload(model: Type[ModelT], payload: Mapping[str, Any]) -> ModelT:
    """Validate ``payload`` into ``model`` raising the domain ``ValidationError``."""

    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        issues = [
            ValidationIssue(
                code="PAYLOAD_INVALID",
                message=error["msg"],
                field=".".join(str(part) for part in error["loc"]) or None,
            )
            for error in exc.errors()
        ]
        raise ValidationError(issues) from exc


__all__ = [
    "PriorityUpdate",
    "SimilarityItem",
    "SupervisorCapacityItem",
    "SupervisorsBulkImport",
    "TagPriorityItem",
    "TagsBulkImport",
    "parse_payload",
]
