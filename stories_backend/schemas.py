"""
Pydantic schemas for the stories API. Responses expose UUIDs as ``id``;
surrogate keys never leave the service.
"""

from __future__ import annotations

from typing import Dict, Optional

from pydantic import BaseModel, Field

from stories_backend.records import Category, Chapter, ChoiceGroup, Slide, Story


class CategoryResponse(BaseModel):
    id: str
    name: str
    image_url: str
    dominant_color: str
    created_at: float
    updated_at: float

    @classmethod
    def from_record(cls, category: Category) -> "CategoryResponse":
        return cls(
            id=category.uuid,
            name=category.name,
            image_url=category.image_url,
            dominant_color=category.dominant_color,
            created_at=category.created_at,
            updated_at=category.updated_at,
        )


class SlideResponse(BaseModel):
    id: str
    content: str
    sequence: int
    image_url: str
    audio_url: str
    created_at: float

    @classmethod
    def from_record(cls, slide: Slide) -> "SlideResponse":
        return cls(
            id=slide.uuid,
            content=slide.content,
            sequence=slide.sequence,
            image_url=slide.image_url,
            audio_url=slide.audio_url,
            created_at=slide.created_at,
        )


class ChapterResponse(BaseModel):
    id: str
    story_id: str
    slide_count: int
    slides: list[SlideResponse] = Field(default_factory=list)

    @classmethod
    def from_record(cls, chapter: Chapter) -> "ChapterResponse":
        return cls(
            id=chapter.uuid,
            story_id=chapter.story_uuid,
            slide_count=chapter.slide_count,
            slides=[SlideResponse.from_record(s) for s in chapter.slides],
        )


class StoryResponse(BaseModel):
    id: str
    title: str
    description: str
    thumbnail_url: str
    dominant_color: str
    user_id: str
    status: str
    slide_count: int
    category_id: Optional[str] = None
    category: Optional[CategoryResponse] = None
    slides: list[SlideResponse] = Field(default_factory=list)
    chapters: list[ChapterResponse] = Field(default_factory=list)
    created_at: float
    updated_at: float

    @classmethod
    def from_record(cls, story: Story) -> "StoryResponse":
        return cls(
            id=story.uuid,
            title=story.title,
            description=story.description,
            thumbnail_url=story.thumbnail_url,
            dominant_color=story.dominant_color,
            user_id=story.user_id,
            status=story.status.value,
            slide_count=story.slide_count,
            category_id=story.category.uuid if story.category else None,
            category=CategoryResponse.from_record(story.category) if story.category else None,
            slides=[SlideResponse.from_record(s) for s in story.slides],
            chapters=[ChapterResponse.from_record(c) for c in story.chapters],
            created_at=story.created_at,
            updated_at=story.updated_at,
        )


class CreateChapterRequest(BaseModel):
    story_id: str


class SavePreferencesRequest(BaseModel):
    story_categories: list[str] = Field(default_factory=list)
    dakwah_categories: list[str] = Field(default_factory=list)
    hadist_categories: list[str] = Field(default_factory=list)


class PreferencesResponse(BaseModel):
    story_categories: list[CategoryResponse]
    dakwah_categories: list[CategoryResponse]
    hadist_categories: list[CategoryResponse]

    @classmethod
    def from_choices(cls, choices: Dict[ChoiceGroup, list[Category]]) -> "PreferencesResponse":
        def _group(group: ChoiceGroup) -> list[CategoryResponse]:
            return [CategoryResponse.from_record(c) for c in choices.get(group, [])]

        return cls(
            story_categories=_group(ChoiceGroup.STORY),
            dakwah_categories=_group(ChoiceGroup.DAKWAH),
            hadist_categories=_group(ChoiceGroup.HADIST),
        )


class MessageResponse(BaseModel):
    message: str
