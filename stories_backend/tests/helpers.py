"""Shared builders for the test suite."""

from __future__ import annotations

import io
from dataclasses import dataclass, field

from PIL import Image

from stories_backend.cache import InMemoryCacheClient
from stories_backend.config import Settings
from stories_backend.context import OperationContext
from stories_backend.db import InMemoryDbClient
from stories_backend.media import Asset
from stories_backend.storage import InMemoryStorageClient
from stories_backend.usecases import (
    CategoryUseCase,
    ChapterUseCase,
    PreferenceUseCase,
    StoryUseCase,
)


def make_settings(**overrides) -> Settings:
    values = {"use_in_memory_backends": True, "cleanup_timeout_seconds": 2.0}
    values.update(overrides)
    return Settings(_env_file=None, **values)


def png_bytes(color=(200, 30, 30), size=(16, 16)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def png_asset(color=(200, 30, 30), name="image.png") -> Asset:
    return Asset(data=png_bytes(color), filename=name, content_type="image/png")


def fake_aac(asset: Asset) -> Asset:
    return Asset(data=b"aac:" + asset.data, filename="narration.m4a", content_type="audio/mp4")


@dataclass
class Harness:
    settings: Settings
    db: InMemoryDbClient = field(default_factory=InMemoryDbClient)
    cache: InMemoryCacheClient = field(default_factory=InMemoryCacheClient)
    storage: InMemoryStorageClient = field(default_factory=InMemoryStorageClient)

    def __post_init__(self):
        args = (self.settings, self.db, self.cache, self.storage)
        self.categories = CategoryUseCase(*args, audio_converter=fake_aac)
        self.stories = StoryUseCase(*args, audio_converter=fake_aac)
        self.chapters = ChapterUseCase(*args, audio_converter=fake_aac)
        self.preferences = PreferenceUseCase(self.settings, self.db)
        self.ctx = OperationContext()


def make_harness(**settings_overrides) -> Harness:
    return Harness(settings=make_settings(**settings_overrides))
