"""
Relational store interface and an in-memory implementation for tests/dev.

The SQLAlchemy implementation lives in ``stories_backend.db_sql``.
"""

from __future__ import annotations

import copy
import threading
import time
from typing import Dict, Optional, Protocol

from stories_backend.errors import ConflictError, NotFoundError, QuotaExceededError
from stories_backend.records import (
    Category,
    Chapter,
    ChoiceGroup,
    Slide,
    Story,
    UserChoice,
)

SORTABLE_COLUMNS = ("created_at", "updated_at", "title", "slide_count")
CATEGORY_SEARCH_LIMIT = 10
STORY_SEARCH_LIMIT = 20


class DbClient(Protocol):
    """Interface for relational storage."""

    # Categories
    def create_category(self, category: Category) -> Category:
        ...

    def get_category_by_uuid(self, uuid: str) -> Optional[Category]:
        ...

    def get_category_by_name(self, name: str) -> Optional[Category]:
        ...

    def list_categories(self) -> list[Category]:
        ...

    def search_categories(self, query: str, limit: int = CATEGORY_SEARCH_LIMIT) -> list[Category]:
        ...

    def update_category(self, category: Category) -> Category:
        ...

    def delete_category(self, uuid: str) -> bool:
        ...

    # Stories
    def check_duplicate_story(self, title: str, description: str) -> bool:
        ...

    def create_story(self, story: Story) -> Story:
        ...

    def get_story_by_uuid(self, uuid: str) -> Optional[Story]:
        ...

    def list_stories(
        self, page: int, limit: int, sort_column: str, descending: bool
    ) -> list[Story]:
        ...

    def list_stories_by_category(self, category_id: int) -> list[Story]:
        ...

    def search_stories(self, query: str, limit: int = STORY_SEARCH_LIMIT) -> list[Story]:
        ...

    def update_story(self, story: Story) -> Story:
        ...

    def delete_story(self, uuid: str) -> bool:
        ...

    # Chapters
    def create_chapter(self, chapter: Chapter) -> Chapter:
        ...

    def get_chapter_by_uuid(self, uuid: str) -> Optional[Chapter]:
        ...

    def delete_chapter(self, uuid: str) -> bool:
        ...

    # Slides
    def count_slides(
        self, *, story_id: Optional[int] = None, chapter_id: Optional[int] = None
    ) -> int:
        ...

    def create_slide(self, slide: Slide, limit: int) -> Slide:
        ...

    def get_slide_by_uuid(self, uuid: str) -> Optional[Slide]:
        ...

    # Preferences
    def replace_user_choices(
        self, user_id: str, choices: Dict[ChoiceGroup, list[int]]
    ) -> None:
        ...

    def list_user_choices(self, user_id: str) -> Dict[ChoiceGroup, list[Category]]:
        ...


def _matches(query: str, *values: str) -> bool:
    needle = query.lower()
    return any(needle in (value or "").lower() for value in values)


class InMemoryDbClient:
    """Simple in-memory database for development and tests.

    Records are copied on the way in and out so callers never alias stored
    state, and every public method holds one lock for its whole body, which
    stands in for a transaction.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._ids = 0
        self.categories: Dict[int, Category] = {}
        self.stories: Dict[int, Story] = {}
        self.chapters: Dict[int, Chapter] = {}
        self.slides: Dict[int, Slide] = {}
        self.choices: list[UserChoice] = []

    def _next_id(self) -> int:
        self._ids += 1
        return self._ids

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.categories.clear()
            self.stories.clear()
            self.chapters.clear()
            self.slides.clear()
            self.choices.clear()

    # Categories

    def _category_named(self, name: str) -> Optional[Category]:
        for category in self.categories.values():
            if category.name == name:
                return category
        return None

    def _category_with_uuid(self, uuid: str) -> Optional[Category]:
        for category in self.categories.values():
            if category.uuid == uuid:
                return category
        return None

    def create_category(self, category: Category) -> Category:
        with self._lock:
            if self._category_named(category.name):
                raise ConflictError(f"category '{category.name}' already exists")
            stored = copy.deepcopy(category)
            stored.id = self._next_id()
            stored.created_at = stored.updated_at = time.time()
            self.categories[stored.id] = stored
            return copy.deepcopy(stored)

    def get_category_by_uuid(self, uuid: str) -> Optional[Category]:
        with self._lock:
            return copy.deepcopy(self._category_with_uuid(uuid))

    def get_category_by_name(self, name: str) -> Optional[Category]:
        with self._lock:
            return copy.deepcopy(self._category_named(name))

    def list_categories(self) -> list[Category]:
        with self._lock:
            return [copy.deepcopy(c) for _, c in sorted(self.categories.items())]

    def search_categories(self, query: str, limit: int = CATEGORY_SEARCH_LIMIT) -> list[Category]:
        with self._lock:
            found = [c for _, c in sorted(self.categories.items()) if _matches(query, c.name)]
            return copy.deepcopy(found[:limit])

    def update_category(self, category: Category) -> Category:
        with self._lock:
            if category.id not in self.categories:
                raise NotFoundError("Category", category.uuid)
            clash = self._category_named(category.name)
            if clash and clash.id != category.id:
                raise ConflictError(f"category '{category.name}' already exists")
            stored = copy.deepcopy(category)
            stored.updated_at = time.time()
            self.categories[stored.id] = stored
            return copy.deepcopy(stored)

    def delete_category(self, uuid: str) -> bool:
        with self._lock:
            category = self._category_with_uuid(uuid)
            if category is None:
                return False
            for story in [s for s in self.stories.values() if s.category_id == category.id]:
                self._delete_story_rows(story)
            self.choices = [c for c in self.choices if c.category_id != category.id]
            del self.categories[category.id]
            return True

    # Stories

    def _assemble_story(self, story: Story, *, with_children: bool) -> Story:
        result = copy.deepcopy(story)
        category = self.categories.get(story.category_id)
        result.category = copy.deepcopy(category)
        if with_children:
            result.slides = self._slides_for(story_id=story.id)
            result.chapters = [
                self._assemble_chapter(chapter)
                for _, chapter in sorted(self.chapters.items())
                if chapter.story_id == story.id
            ]
        return result

    def _slides_for(
        self, *, story_id: Optional[int] = None, chapter_id: Optional[int] = None
    ) -> list[Slide]:
        if story_id is not None:
            found = [s for s in self.slides.values() if s.story_id == story_id]
        else:
            found = [s for s in self.slides.values() if s.chapter_id == chapter_id]
        found.sort(key=lambda s: (s.sequence, s.id))
        return copy.deepcopy(found)

    def _story_with_uuid(self, uuid: str) -> Optional[Story]:
        for story in self.stories.values():
            if story.uuid == uuid:
                return story
        return None

    def check_duplicate_story(self, title: str, description: str) -> bool:
        with self._lock:
            return any(
                s.title == title and s.description == description
                for s in self.stories.values()
            )

    def create_story(self, story: Story) -> Story:
        with self._lock:
            if story.category_id not in self.categories:
                raise NotFoundError("Category")
            stored = copy.deepcopy(story)
            stored.id = self._next_id()
            stored.slide_count = 0
            stored.category = None
            stored.slides = []
            stored.chapters = []
            stored.created_at = stored.updated_at = time.time()
            self.stories[stored.id] = stored
            return self._assemble_story(stored, with_children=False)

    def get_story_by_uuid(self, uuid: str) -> Optional[Story]:
        with self._lock:
            story = self._story_with_uuid(uuid)
            if story is None:
                return None
            return self._assemble_story(story, with_children=True)

    def list_stories(
        self, page: int, limit: int, sort_column: str, descending: bool
    ) -> list[Story]:
        if sort_column not in SORTABLE_COLUMNS:
            raise ValueError(f"unsupported sort column: {sort_column}")
        with self._lock:
            ordered = sorted(
                self.stories.values(),
                key=lambda s: (getattr(s, sort_column), s.id),
                reverse=descending,
            )
            offset = (page - 1) * limit
            return [
                self._assemble_story(s, with_children=False)
                for s in ordered[offset: offset + limit]
            ]

    def list_stories_by_category(self, category_id: int) -> list[Story]:
        with self._lock:
            return [
                self._assemble_story(s, with_children=True)
                for _, s in sorted(self.stories.items())
                if s.category_id == category_id
            ]

    def search_stories(self, query: str, limit: int = STORY_SEARCH_LIMIT) -> list[Story]:
        with self._lock:
            found = [
                s for _, s in sorted(self.stories.items())
                if _matches(query, s.title, s.description)
            ]
            return [self._assemble_story(s, with_children=False) for s in found[:limit]]

    def update_story(self, story: Story) -> Story:
        with self._lock:
            current = self.stories.get(story.id)
            if current is None:
                raise NotFoundError("Story", story.uuid)
            if story.category_id not in self.categories:
                raise NotFoundError("Category")
            stored = copy.deepcopy(story)
            stored.slide_count = current.slide_count
            stored.category = None
            stored.slides = []
            stored.chapters = []
            stored.updated_at = time.time()
            self.stories[stored.id] = stored
            return self._assemble_story(stored, with_children=True)

    def _delete_story_rows(self, story: Story) -> None:
        chapter_ids = {c.id for c in self.chapters.values() if c.story_id == story.id}
        for slide_id in [
            s.id for s in self.slides.values()
            if s.story_id == story.id or s.chapter_id in chapter_ids
        ]:
            del self.slides[slide_id]
        for chapter_id in chapter_ids:
            del self.chapters[chapter_id]
        del self.stories[story.id]

    def delete_story(self, uuid: str) -> bool:
        with self._lock:
            story = self._story_with_uuid(uuid)
            if story is None:
                return False
            self._delete_story_rows(story)
            return True

    # Chapters

    def _assemble_chapter(self, chapter: Chapter) -> Chapter:
        result = copy.deepcopy(chapter)
        story = self.stories.get(chapter.story_id)
        result.story_uuid = story.uuid if story else ""
        result.slides = self._slides_for(chapter_id=chapter.id)
        return result

    def create_chapter(self, chapter: Chapter) -> Chapter:
        with self._lock:
            if chapter.story_id not in self.stories:
                raise NotFoundError("Story")
            stored = copy.deepcopy(chapter)
            stored.id = self._next_id()
            stored.slide_count = 0
            stored.slides = []
            stored.created_at = stored.updated_at = time.time()
            self.chapters[stored.id] = stored
            return self._assemble_chapter(stored)

    def get_chapter_by_uuid(self, uuid: str) -> Optional[Chapter]:
        with self._lock:
            for chapter in self.chapters.values():
                if chapter.uuid == uuid:
                    return self._assemble_chapter(chapter)
            return None

    def delete_chapter(self, uuid: str) -> bool:
        with self._lock:
            for chapter in list(self.chapters.values()):
                if chapter.uuid == uuid:
                    for slide_id in [s.id for s in self.slides.values() if s.chapter_id == chapter.id]:
                        del self.slides[slide_id]
                    del self.chapters[chapter.id]
                    return True
            return False

    # Slides

    def count_slides(
        self, *, story_id: Optional[int] = None, chapter_id: Optional[int] = None
    ) -> int:
        with self._lock:
            if story_id is not None:
                parent = self.stories.get(story_id)
            else:
                parent = self.chapters.get(chapter_id)
            return parent.slide_count if parent else 0

    def create_slide(self, slide: Slide, limit: int) -> Slide:
        with self._lock:
            if (slide.story_id is None) == (slide.chapter_id is None):
                raise ValueError("slide needs exactly one parent")
            if slide.story_id is not None:
                parent = self.stories.get(slide.story_id)
                resource = "Story"
            else:
                parent = self.chapters.get(slide.chapter_id)
                resource = "Chapter"
            if parent is None:
                raise NotFoundError(resource)
            if parent.slide_count >= limit:
                raise QuotaExceededError(limit)
            stored = copy.deepcopy(slide)
            stored.id = self._next_id()
            stored.created_at = stored.updated_at = time.time()
            self.slides[stored.id] = stored
            parent.slide_count += 1
            parent.updated_at = stored.created_at
            return copy.deepcopy(stored)

    def get_slide_by_uuid(self, uuid: str) -> Optional[Slide]:
        with self._lock:
            for slide in self.slides.values():
                if slide.uuid == uuid:
                    return copy.deepcopy(slide)
            return None

    # Preferences

    def replace_user_choices(
        self, user_id: str, choices: Dict[ChoiceGroup, list[int]]
    ) -> None:
        with self._lock:
            for category_ids in choices.values():
                missing = [cid for cid in category_ids if cid not in self.categories]
                if missing:
                    raise NotFoundError("Category")
            self.choices = [c for c in self.choices if c.user_id != user_id]
            for group, category_ids in choices.items():
                self.choices.extend(
                    UserChoice(user_id=user_id, category_id=cid, group=group)
                    for cid in category_ids
                )

    def list_user_choices(self, user_id: str) -> Dict[ChoiceGroup, list[Category]]:
        with self._lock:
            result: Dict[ChoiceGroup, list[Category]] = {group: [] for group in ChoiceGroup}
            for choice in self.choices:
                if choice.user_id == user_id and choice.category_id in self.categories:
                    result[choice.group].append(copy.deepcopy(self.categories[choice.category_id]))
            return result
