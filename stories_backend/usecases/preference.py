"""
Preference orchestration: replace a user's saved category choices.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Sequence

from stories_backend.context import OperationContext
from stories_backend.errors import BadInputError
from stories_backend.records import Category, ChoiceGroup
from stories_backend.usecases.base import UseCase

logger = logging.getLogger(__name__)


class PreferenceUseCase(UseCase):
    def save(
        self,
        ctx: OperationContext,
        user_id: str,
        story_refs: Optional[Sequence[str]] = None,
        dakwah_refs: Optional[Sequence[str]] = None,
        hadist_refs: Optional[Sequence[str]] = None,
    ) -> Dict[ChoiceGroup, list[Category]]:
        """Replace every saved choice of ``user_id``.

        Category UUIDs that do not resolve are skipped rather than failing the
        request; the returned mapping holds what was actually saved.
        """
        if not user_id:
            raise BadInputError("user id is required")
        requested = {
            ChoiceGroup.STORY: list(story_refs or []),
            ChoiceGroup.DAKWAH: list(dakwah_refs or []),
            ChoiceGroup.HADIST: list(hadist_refs or []),
        }
        limit = self.settings.preference_max_per_group
        for group, refs in requested.items():
            if len(refs) > limit:
                raise BadInputError(f"at most {limit} {group.value} categories may be selected")

        resolved: Dict[ChoiceGroup, list[Category]] = {}
        for group, refs in requested.items():
            categories: list[Category] = []
            for ref in dict.fromkeys(refs):
                category = self._call_store(
                    ctx, "resolve category", self.db.get_category_by_uuid, ref
                )
                if category is None:
                    logger.warning("Skipping unknown %s category %s for user %s", group.value, ref, user_id)
                    continue
                categories.append(category)
            resolved[group] = categories

        self._call_store(
            ctx,
            "replace user choices",
            self.db.replace_user_choices,
            user_id,
            {group: [c.id for c in categories] for group, categories in resolved.items()},
        )
        return resolved

    def get(self, ctx: OperationContext, user_id: str) -> Dict[ChoiceGroup, list[Category]]:
        if not user_id:
            raise BadInputError("user id is required")
        return self._call_store(ctx, "load user choices", self.db.list_user_choices, user_id)
