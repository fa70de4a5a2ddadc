"""
Story orchestration.

A story spans three systems: its row in the relational store, its thumbnail
(and its slides' assets) in the blob store, and every cached page of the story
list. Nothing coordinates them, so each mutation below orders its steps so that
a failure part-way through can be undone:

* ``create`` inserts a ``Pending`` skeleton row, uploads the thumbnail, then
  promotes the row to ``Draft`` with the thumbnail URL and color. An upload
  failure deletes the row; a promotion failure deletes the blob and the row.
* ``update`` uploads a replacement thumbnail under a fresh path and deletes the
  old blob only after the row points at the new one.
* ``delete`` removes the rows first and the blobs afterwards, best-effort.
* ``add_slide`` enforces the slide quota before touching the blob store.

Every successful mutation drops all cached list pages by prefix.
"""

from __future__ import annotations

import logging
from typing import Optional

from stories_backend.cache import STORY_LIST_PREFIX, story_list_key
from stories_backend.colors import dominant_color_or_default
from stories_backend.context import OperationContext
from stories_backend.db import SORTABLE_COLUMNS
from stories_backend.errors import (
    BadInputError,
    ConflictError,
    NotFoundError,
    QuotaExceededError,
)
from stories_backend.media import Asset
from stories_backend.records import Category, Slide, Story, StoryStatus, new_uuid
from stories_backend.usecases.base import UseCase

logger = logging.getLogger(__name__)

DEFAULT_SORT = "created_at desc"
MAX_PAGE_SIZE = 100


def parse_sort(sort: str) -> tuple[str, bool]:
    """Validate ``"<column> <asc|desc>"`` and return ``(column, descending)``."""
    parts = (sort or DEFAULT_SORT).strip().lower().split()
    if len(parts) == 1:
        parts.append("asc")
    if len(parts) != 2 or parts[0] not in SORTABLE_COLUMNS or parts[1] not in ("asc", "desc"):
        raise BadInputError(
            f"invalid sort '{sort}', expected '<column> <asc|desc>' with column in "
            + ", ".join(SORTABLE_COLUMNS)
        )
    return parts[0], parts[1] == "desc"


class StoryUseCase(UseCase):
    def _resolve_category(self, ctx: OperationContext, category_uuid: str) -> Category:
        category = self._call_store(
            ctx, "load category", self.db.get_category_by_uuid, category_uuid
        )
        if category is None:
            raise NotFoundError("Category", category_uuid)
        return category

    def create(
        self,
        ctx: OperationContext,
        title: str,
        description: str,
        category_uuid: str,
        user_id: str,
        image: Optional[Asset] = None,
    ) -> Story:
        title = (title or "").strip()
        description = (description or "").strip()
        if not title or not description:
            raise BadInputError("title and description are required")

        if self._call_store(
            ctx, "check duplicate story", self.db.check_duplicate_story, title, description
        ):
            raise ConflictError("story with the same title and description already exists")
        category = self._resolve_category(ctx, category_uuid)

        skeleton = Story(
            title=title,
            description=description,
            category_id=category.id,
            user_id=user_id or "",
            status=StoryStatus.PENDING,
        )
        story = self._call_store(ctx, "insert story", self.db.create_story, skeleton)

        thumbnail_url = ""
        try:
            if image:
                path = f"{self.settings.stories_thumb_path}{story.uuid}{image.extension}"
                thumbnail_url = self._upload(
                    ctx, image, self.settings.story_thumbnails_bucket, path
                )
                story.dominant_color = dominant_color_or_default(image.data)
        except Exception:
            logger.warning("Thumbnail upload failed, removing story %s", story.uuid)
            self._run_cleanup([("delete story row", self.db.delete_story, (story.uuid,))])
            self._invalidate(STORY_LIST_PREFIX)
            raise

        story.thumbnail_url = thumbnail_url
        story.status = StoryStatus.DRAFT
        try:
            story = self._call_store(ctx, "promote story", self.db.update_story, story)
        except Exception:
            logger.warning("Story promotion failed, rolling back story %s", skeleton.uuid)
            tasks = [("delete story row", self.db.delete_story, (skeleton.uuid,))]
            if thumbnail_url:
                tasks.append(("delete thumbnail", self.storage.delete, (thumbnail_url,)))
            self._run_cleanup(tasks)
            self._invalidate(STORY_LIST_PREFIX)
            raise

        self._invalidate(STORY_LIST_PREFIX)
        logger.info("Created story %s in category %s", story.uuid, category.uuid)
        return story

    def get(self, ctx: OperationContext, uuid: str) -> Story:
        story = self._call_store(ctx, "load story", self.db.get_story_by_uuid, uuid)
        if story is None:
            raise NotFoundError("Story", uuid)
        return story

    def get_all(
        self,
        ctx: OperationContext,
        page: int = 1,
        limit: int = 10,
        sort: str = DEFAULT_SORT,
    ) -> list[Story]:
        if page < 1:
            raise BadInputError("page must be at least 1")
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise BadInputError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        column, descending = parse_sort(sort)
        key = story_list_key(page, limit, f"{column} {'desc' if descending else 'asc'}")

        cached = self._cache_get_json(key)
        if cached is not None:
            try:
                return [Story.from_dict(item) for item in cached]
            except (KeyError, TypeError, ValueError):
                logger.warning("Ignoring malformed cached story page %s", key)

        stories = self._call_store(
            ctx, "list stories", self.db.list_stories, page, limit, column, descending
        )
        self._cache_set_json(
            key, [story.as_dict() for story in stories], self.settings.story_list_cache_ttl
        )
        return stories

    def search(self, ctx: OperationContext, query: str) -> list[Story]:
        query = (query or "").strip()
        if not query:
            raise BadInputError("query required")
        return self._call_store(ctx, "search stories", self.db.search_stories, query)

    def update(
        self,
        ctx: OperationContext,
        uuid: str,
        title: str = "",
        description: str = "",
        category_uuid: str = "",
        status: str = "",
        image: Optional[Asset] = None,
    ) -> Story:
        story = self.get(ctx, uuid)

        # Empty values mean "leave unchanged".
        if title and title.strip():
            story.title = title.strip()
        if description and description.strip():
            story.description = description.strip()
        if status:
            try:
                new_status = StoryStatus(status)
            except ValueError:
                new_status = None
            if new_status not in (StoryStatus.DRAFT, StoryStatus.PUBLISHED):
                raise BadInputError(f"invalid status '{status}'")
            story.status = new_status
        if category_uuid:
            category = self._resolve_category(ctx, category_uuid)
            story.category_id = category.id
            story.category = category

        old_url = story.thumbnail_url
        new_url = ""
        if image:
            path = f"{self.settings.stories_thumb_path}{new_uuid()}{image.extension}"
            new_url = self._upload(ctx, image, self.settings.story_thumbnails_bucket, path)
            story.thumbnail_url = new_url
            story.dominant_color = dominant_color_or_default(image.data)

        try:
            updated = self._call_store(ctx, "update story", self.db.update_story, story)
        except Exception:
            if new_url:
                logger.warning("Story update failed, removing new thumbnail %s", new_url)
                self._delete_blobs([new_url])
            raise

        if new_url and old_url:
            self._delete_blobs([old_url])
        self._invalidate(STORY_LIST_PREFIX)
        return updated

    def delete(self, ctx: OperationContext, uuid: str) -> None:
        story = self._call_store(ctx, "load story", self.db.get_story_by_uuid, uuid)
        if story is None:
            return
        if self._call_store(ctx, "delete story", self.db.delete_story, uuid):
            self._delete_blobs(story.blob_urls())
        self._invalidate(STORY_LIST_PREFIX)
        logger.info("Deleted story %s", uuid)

    def add_slide(
        self,
        ctx: OperationContext,
        story_uuid: str,
        content: str,
        sequence: int,
        image: Optional[Asset] = None,
        audio: Optional[Asset] = None,
    ) -> Slide:
        story = self._call_store(ctx, "load story", self.db.get_story_by_uuid, story_uuid)
        if story is None:
            raise NotFoundError("Story", story_uuid)

        count = self._call_store(ctx, "count slides", self.db.count_slides, story_id=story.id)
        if count >= self.settings.slide_limit:
            raise QuotaExceededError(self.settings.slide_limit)

        slide = self._create_slide(
            ctx,
            Slide(content=content or "", sequence=sequence, story_id=story.id),
            image,
            audio,
        )
        self._invalidate(STORY_LIST_PREFIX)
        return slide
