"""
Chapter orchestration. Chapters split a story into parts that own their own
slides; chapter slides carry a mandatory image and an optional narration track.
"""

from __future__ import annotations

import logging
from typing import Optional

from stories_backend.cache import STORY_LIST_PREFIX
from stories_backend.context import OperationContext
from stories_backend.errors import BadInputError, NotFoundError, QuotaExceededError
from stories_backend.media import Asset
from stories_backend.records import Chapter, Slide
from stories_backend.usecases.base import UseCase

logger = logging.getLogger(__name__)


class ChapterUseCase(UseCase):
    def create(self, ctx: OperationContext, story_uuid: str) -> Chapter:
        story = self._call_store(ctx, "load story", self.db.get_story_by_uuid, story_uuid)
        if story is None:
            raise NotFoundError("Story", story_uuid)
        chapter = self._call_store(
            ctx, "insert chapter", self.db.create_chapter, Chapter(story_id=story.id)
        )
        self._invalidate(STORY_LIST_PREFIX)
        return chapter

    def get(self, ctx: OperationContext, uuid: str) -> Chapter:
        chapter = self._call_store(ctx, "load chapter", self.db.get_chapter_by_uuid, uuid)
        if chapter is None:
            raise NotFoundError("Chapter", uuid)
        return chapter

    def delete(self, ctx: OperationContext, uuid: str) -> None:
        chapter = self.get(ctx, uuid)
        self._call_store(ctx, "delete chapter", self.db.delete_chapter, uuid)
        urls = []
        for slide in chapter.slides:
            urls.extend(slide.blob_urls())
        self._delete_blobs(urls)
        self._invalidate(STORY_LIST_PREFIX)

    def add_slide(
        self,
        ctx: OperationContext,
        chapter_uuid: str,
        content: str,
        sequence: int,
        image: Asset,
        audio: Optional[Asset] = None,
    ) -> Slide:
        if not image:
            raise BadInputError("slide image is required")
        chapter = self.get(ctx, chapter_uuid)

        count = self._call_store(ctx, "count slides", self.db.count_slides, chapter_id=chapter.id)
        if count >= self.settings.slide_limit:
            raise QuotaExceededError(self.settings.slide_limit)

        slide = self._create_slide(
            ctx,
            Slide(content=content or "", sequence=sequence, chapter_id=chapter.id),
            image,
            audio,
        )
        self._invalidate(STORY_LIST_PREFIX)
        return slide
