"""Administrative tag import and similar-tag lookup."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Mapping

from matchmaker.domain.errors import MatchmakerError, ValidationError, ValidationIssue
from matchmaker.infrastructure.monitoring.metrics import tag_import_total
from matchmaker.lifecycle.uow import SQLAlchemyUnitOfWork, UnitOfWorkFactory, with_transaction
from matchmaker.matching.contracts import TagSimilarity
from matchmaker.matching.schemas import TagsBulkImport, parse_payload
from matchmaker.matching.tag_graph import TagGraph, TagGraphStore
from matchmaker.matching.validation import validate_tag_import

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TagImportSummary:
    tags_processed: int
    similarities_replaced: int


@dataclass(frozen=True, slots=True)
class SimilarTag:
    tag_id: str
    name: str
    similarity: float


class TagImportService:
    """Persists a bulk import, then publishes the reloaded graph."""

    def __init__(self, uow_factory: UnitOfWorkFactory, store: TagGraphStore) -> None:
        self._uow_factory = uow_factory
        self._store = store

    def bulk_import(self, payload: Mapping[str, Any] | TagsBulkImport) -> TagImportSummary:
        try:
            request = payload if isinstance(payload, TagsBulkImport) else parse_payload(TagsBulkImport, payload)
            similarities = request.similarity_inputs()
            validate_tag_import(request.tags, similarities).raise_for_issues()

            def apply(uow: SQLAlchemyUnitOfWork) -> tuple[TagGraph, int]:
                tags = uow.tags
                by_name = tags.add_missing(request.tags)
                rows = [
                    TagSimilarity(by_name[item.field1].id, by_name[item.field2].id, float(item.similarity_score))
                    for item in similarities
                ]
                replaced = tags.replace_similarities(rows)
                return tags.load_graph(), replaced

            graph, replaced = with_transaction(self._uow_factory, apply)
        except MatchmakerError as exc:
            tag_import_total.labels(outcome="rejected").inc()
            logger.warning(
                "tag import rejected",
                extra={"code": exc.error_code, "detail": exc.message},
            )
            raise
        except Exception:
            tag_import_total.labels(outcome="failed").inc()
            raise

        # Readers switch to the new graph only after the rows are committed.
        self._store.publish(graph)
        tag_import_total.labels(outcome="applied").inc()
        summary = TagImportSummary(tags_processed=len(request.tags), similarities_replaced=replaced)
        logger.info(
            "tag import applied",
            extra={
                "code": "TAG_IMPORT_APPLIED",
                "tags": summary.tags_processed,
                "similarities": summary.similarities_replaced,
            },
        )
        return summary

    def reload(self) -> TagGraph:
        """Publish the graph currently stored in the database."""

        graph = with_transaction(self._uow_factory, lambda uow: uow.tags.load_graph())
        self._store.publish(graph)
        return graph

    def find_similar_tags(self, tag_id: str, min_similarity: float = 0.0) -> List[SimilarTag]:
        graph = self._store.snapshot()
        if tag_id not in graph.tags:
            raise ValidationError([ValidationIssue("TAG_NOT_FOUND", f"tag {tag_id} does not exist", "tag_id")])
        return [
            SimilarTag(tag_id=tag.id, name=tag.name, similarity=score)
            for tag, score in graph.neighbours(tag_id, min_similarity)
        ]


__all__ = ["SimilarTag", "TagImportService", "TagImportSummary"]
