"""
Plain records passed between the store, the use cases and the HTTP layer.

Surrogate ``id`` values stay inside the store/use-case boundary; ``as_dict``
(used for the list cache) and the response schemas only carry UUIDs.
"""

from __future__ import annotations

import enum
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

DEFAULT_COLOR = "#000000"


class StoryStatus(str, enum.Enum):
    PENDING = "Pending"
    DRAFT = "Draft"
    PUBLISHED = "Published"


class ChoiceGroup(str, enum.Enum):
    STORY = "story"
    DAKWAH = "dakwah"
    HADIST = "hadist"


def new_uuid() -> str:
    return str(uuid.uuid4())


def _now() -> float:
    return time.time()


@dataclass
class Category:
    name: str
    uuid: str = field(default_factory=new_uuid)
    image_url: str = ""
    dominant_color: str = DEFAULT_COLOR
    id: Optional[int] = None
    created_at: float = field(default_factory=_now)
    updated_at: float = field(default_factory=_now)

    def as_dict(self) -> dict:
        return {
            "uuid": self.uuid,
            "name": self.name,
            "image_url": self.image_url,
            "dominant_color": self.dominant_color,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Category":
        return cls(
            uuid=data["uuid"],
            name=data["name"],
            image_url=data.get("image_url", ""),
            dominant_color=data.get("dominant_color", DEFAULT_COLOR),
            created_at=data.get("created_at", 0.0),
            updated_at=data.get("updated_at", 0.0),
        )


@dataclass
class Slide:
    content: str
    sequence: int
    story_id: Optional[int] = None
    chapter_id: Optional[int] = None
    uuid: str = field(default_factory=new_uuid)
    image_url: str = ""
    audio_url: str = ""
    id: Optional[int] = None
    created_at: float = field(default_factory=_now)
    updated_at: float = field(default_factory=_now)

    def as_dict(self) -> dict:
        return {
            "uuid": self.uuid,
            "content": self.content,
            "sequence": self.sequence,
            "image_url": self.image_url,
            "audio_url": self.audio_url,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Slide":
        return cls(
            uuid=data["uuid"],
            content=data.get("content", ""),
            sequence=data.get("sequence", 0),
            image_url=data.get("image_url", ""),
            audio_url=data.get("audio_url", ""),
            created_at=data.get("created_at", 0.0),
            updated_at=data.get("updated_at", 0.0),
        )

    def blob_urls(self) -> list[str]:
        return [url for url in (self.image_url, self.audio_url) if url]


@dataclass
class Chapter:
    story_id: int
    uuid: str = field(default_factory=new_uuid)
    slide_count: int = 0
    id: Optional[int] = None
    story_uuid: str = ""
    slides: list[Slide] = field(default_factory=list)
    created_at: float = field(default_factory=_now)
    updated_at: float = field(default_factory=_now)


@dataclass
class Story:
    title: str
    description: str
    category_id: int
    user_id: str = ""
    uuid: str = field(default_factory=new_uuid)
    thumbnail_url: str = ""
    dominant_color: str = DEFAULT_COLOR
    status: StoryStatus = StoryStatus.DRAFT
    slide_count: int = 0
    id: Optional[int] = None
    category: Optional[Category] = None
    slides: list[Slide] = field(default_factory=list)
    chapters: list[Chapter] = field(default_factory=list)
    created_at: float = field(default_factory=_now)
    updated_at: float = field(default_factory=_now)

    def as_dict(self) -> dict:
        return {
            "uuid": self.uuid,
            "title": self.title,
            "description": self.description,
            "thumbnail_url": self.thumbnail_url,
            "dominant_color": self.dominant_color,
            "user_id": self.user_id,
            "status": self.status.value,
            "slide_count": self.slide_count,
            "category": self.category.as_dict() if self.category else None,
            "slides": [slide.as_dict() for slide in self.slides],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Story":
        category = data.get("category")
        return cls(
            uuid=data["uuid"],
            title=data["title"],
            description=data.get("description", ""),
            # Cached payloads never carry surrogate keys.
            category_id=0,
            user_id=data.get("user_id", ""),
            thumbnail_url=data.get("thumbnail_url", ""),
            dominant_color=data.get("dominant_color", DEFAULT_COLOR),
            status=StoryStatus(data.get("status", StoryStatus.DRAFT.value)),
            slide_count=data.get("slide_count", 0),
            category=Category.from_dict(category) if category else None,
            slides=[Slide.from_dict(item) for item in data.get("slides", [])],
            created_at=data.get("created_at", 0.0),
            updated_at=data.get("updated_at", 0.0),
        )

    def blob_urls(self) -> list[str]:
        urls = [self.thumbnail_url] if self.thumbnail_url else []
        for slide in self.slides:
            urls.extend(slide.blob_urls())
        for chapter in self.chapters:
            for slide in chapter.slides:
                urls.extend(slide.blob_urls())
        return urls


@dataclass
class UserChoice:
    user_id: str
    category_id: int
    group: ChoiceGroup
