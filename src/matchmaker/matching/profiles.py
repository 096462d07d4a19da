"""Priority profile storage behind validation."""
from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

from matchmaker.domain.errors import ValidationError, ValidationIssue
from matchmaker.lifecycle.uow import SQLAlchemyUnitOfWork, UnitOfWorkFactory, with_transaction

from .contracts import PriorityEntry, PriorityProfile
from .schemas import PriorityUpdate, parse_payload
from .validation import validate_priorities

logger = logging.getLogger(__name__)


class PriorityProfileService:
    def __init__(self, uow_factory: UnitOfWorkFactory) -> None:
        self._uow_factory = uow_factory

    def set_profile(self, user_id: str, entries: Sequence[PriorityEntry]) -> PriorityProfile:
        """Replace the user's tag priorities; entries must rank 1..N."""

        if not user_id or not user_id.strip():
            raise ValidationError([ValidationIssue("USER_ID_BLANK", "user id must not be empty", "user_id")])
        validate_priorities(entries).raise_for_issues()

        def apply(uow: SQLAlchemyUnitOfWork) -> PriorityProfile:
            wanted = [entry.tag_id for entry in entries]
            known = uow.tags.existing_ids(wanted)
            missing = [tag_id for tag_id in wanted if tag_id not in known]
            if missing:
                raise ValidationError(
                    [ValidationIssue("TAG_NOT_FOUND", f"tag {tag_id} does not exist", "tags") for tag_id in missing]
                )
            uow.profiles.replace(user_id, entries)
            return PriorityProfile(user_id=user_id, entries=tuple(entries))

        profile = with_transaction(self._uow_factory, apply)
        logger.info(
            "priority profile replaced",
            extra={"code": "PROFILE_UPDATED", "user": user_id, "tags": len(profile.entries)},
        )
        return profile

    def apply_update(self, payload: Mapping[str, Any]) -> PriorityProfile:
        """``{userId, tags: [{tag_id, priority}]}`` variant of :meth:`set_profile`."""

        update = parse_payload(PriorityUpdate, payload)
        return self.set_profile(update.user_id, update.entries())

    def get_profile(self, user_id: str) -> PriorityProfile:
        return with_transaction(self._uow_factory, lambda uow: uow.profiles.profile(user_id))


__all__ = ["PriorityProfileService"]
