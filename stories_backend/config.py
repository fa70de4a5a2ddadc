"""
Configuration and settings for the stories backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", frozen=True
    )

    api_prefix: str = Field(default="/api")
    log_level: str = Field(default="INFO")

    # Database (Postgres expected, any SQLAlchemy URL works)
    database_url: Optional[str] = Field(default=None)

    # Cache (Redis)
    redis_url: Optional[str] = Field(default=None)

    # S3-compatible object storage
    s3_endpoint: Optional[str] = Field(default=None)
    s3_region: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)
    public_base_url: Optional[str] = Field(default=None)

    # One bucket per asset class
    category_images_bucket: str = Field(default="category-images")
    story_thumbnails_bucket: str = Field(default="story-thumbnails")
    slide_images_bucket: str = Field(default="slide-images")
    slide_audio_bucket: str = Field(default="slide-audio")

    # Storage path prefixes inside the buckets
    category_image_path: str = Field(default="categories/")
    stories_thumb_path: str = Field(default="stories/thumbnails/")
    stories_slide_path: str = Field(default="stories/slides/")

    # Content rules
    slide_limit: int = Field(default=20, ge=1)
    preference_max_per_group: int = Field(default=5, ge=0)

    # Cache TTLs (seconds)
    story_list_cache_ttl: int = Field(default=300, ge=1)
    category_cache_ttl: int = Field(default=1800, ge=1)

    # Time budgets (seconds)
    request_timeout_seconds: float = Field(default=60.0, gt=0)
    cleanup_timeout_seconds: float = Field(default=10.0, gt=0)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
