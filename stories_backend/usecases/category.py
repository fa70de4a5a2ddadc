"""
Category orchestration: two-phase create/update with image upload and color
extraction, cascading delete and a single-key read-through list cache.
"""

from __future__ import annotations

import logging
from typing import Optional

from stories_backend.cache import CATEGORY_LIST_KEY, STORY_LIST_PREFIX
from stories_backend.colors import dominant_color_or_default
from stories_backend.context import OperationContext
from stories_backend.errors import BadInputError, ConflictError, NotFoundError
from stories_backend.media import Asset
from stories_backend.records import Category, new_uuid
from stories_backend.usecases.base import UseCase

logger = logging.getLogger(__name__)


class CategoryUseCase(UseCase):
    def create(
        self, ctx: OperationContext, name: str, image: Optional[Asset] = None
    ) -> Category:
        name = (name or "").strip()
        if not name:
            raise BadInputError("category name is required")
        existing = self._call_store(ctx, "look up category name", self.db.get_category_by_name, name)
        if existing is not None:
            raise ConflictError(f"category '{name}' already exists")

        category = self._call_store(
            ctx, "insert category", self.db.create_category, Category(name=name)
        )
        if image:
            self._attach_new_image(ctx, category, image)
        self._invalidate(CATEGORY_LIST_KEY)
        logger.info("Created category %s", category.uuid)
        return category

    def _attach_new_image(self, ctx: OperationContext, category: Category, image: Asset) -> None:
        """Second phase of create: upload, then write url and color to the row."""
        path = f"{self.settings.category_image_path}{category.uuid}{image.extension}"
        try:
            url = self._upload(ctx, image, self.settings.category_images_bucket, path)
        except Exception:
            self._run_cleanup([("delete category row", self.db.delete_category, (category.uuid,))])
            raise

        category.image_url = url
        category.dominant_color = dominant_color_or_default(image.data)
        try:
            updated = self._call_store(ctx, "update category", self.db.update_category, category)
        except Exception:
            self._run_cleanup([
                ("delete category image", self.storage.delete, (url,)),
                ("delete category row", self.db.delete_category, (category.uuid,)),
            ])
            raise
        category.updated_at = updated.updated_at

    def get(self, ctx: OperationContext, uuid: str) -> Category:
        category = self._call_store(ctx, "load category", self.db.get_category_by_uuid, uuid)
        if category is None:
            raise NotFoundError("Category", uuid)
        return category

    def get_all(self, ctx: OperationContext) -> list[Category]:
        cached = self._cache_get_json(CATEGORY_LIST_KEY)
        if cached is not None:
            try:
                return [Category.from_dict(item) for item in cached]
            except (KeyError, TypeError):
                logger.warning("Ignoring malformed cached category list")

        categories = self._call_store(ctx, "list categories", self.db.list_categories)
        self._cache_set_json(
            CATEGORY_LIST_KEY,
            [category.as_dict() for category in categories],
            self.settings.category_cache_ttl,
        )
        return categories

    def search(self, ctx: OperationContext, query: str) -> list[Category]:
        query = (query or "").strip()
        if not query:
            raise BadInputError("query required")
        return self._call_store(ctx, "search categories", self.db.search_categories, query)

    def update(
        self,
        ctx: OperationContext,
        uuid: str,
        name: str = "",
        image: Optional[Asset] = None,
    ) -> Category:
        category = self.get(ctx, uuid)

        name = (name or "").strip()
        if name and name != category.name:
            clash = self._call_store(ctx, "look up category name", self.db.get_category_by_name, name)
            if clash is not None and clash.uuid != category.uuid:
                raise ConflictError(f"category '{name}' already exists")
            category.name = name

        old_url = category.image_url
        new_url = ""
        if image:
            path = f"{self.settings.category_image_path}{new_uuid()}{image.extension}"
            new_url = self._upload(ctx, image, self.settings.category_images_bucket, path)
            category.image_url = new_url
            category.dominant_color = dominant_color_or_default(image.data)

        try:
            updated = self._call_store(ctx, "update category", self.db.update_category, category)
        except Exception:
            if new_url:
                self._delete_blobs([new_url])
            raise

        if new_url and old_url:
            self._delete_blobs([old_url])
        # Cached story pages embed their category.
        self._invalidate(CATEGORY_LIST_KEY, STORY_LIST_PREFIX)
        return updated

    def delete(self, ctx: OperationContext, uuid: str) -> None:
        category = self.get(ctx, uuid)
        stories = self._call_store(
            ctx, "list category stories", self.db.list_stories_by_category, category.id
        )
        self._call_store(ctx, "delete category", self.db.delete_category, uuid)

        urls = [category.image_url]
        for story in stories:
            urls.extend(story.blob_urls())
        self._delete_blobs(urls)
        self._invalidate(CATEGORY_LIST_KEY, STORY_LIST_PREFIX)
        logger.info("Deleted category %s with %d stories", uuid, len(stories))
