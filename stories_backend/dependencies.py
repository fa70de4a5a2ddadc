"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException

from stories_backend.cache import CacheClient, InMemoryCacheClient, RedisCacheClient
from stories_backend.config import Settings, get_settings
from stories_backend.context import OperationContext
from stories_backend.db import DbClient, InMemoryDbClient
from stories_backend.db_sql import SqlDbClient
from stories_backend.storage import InMemoryStorageClient, S3StorageClient, StorageClient
from stories_backend.usecases import (
    CategoryUseCase,
    ChapterUseCase,
    PreferenceUseCase,
    StoryUseCase,
)
from stories_backend.usecases.base import new_cleanup_executor

ROLE_ADMIN = "Admin"

_db_client: DbClient | None = None
_cache_client: CacheClient | None = None
_storage_client: StorageClient | None = None
_cleanup_executor: ThreadPoolExecutor | None = None


def get_db_client() -> DbClient:
    """
    Return a singleton DB client; the SQLAlchemy engine pools connections.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _db_client = InMemoryDbClient()
    else:
        _db_client = SqlDbClient(settings.database_url)
    return _db_client


def get_cache_client() -> CacheClient:
    global _cache_client
    if _cache_client:
        return _cache_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.redis_url:
        _cache_client = InMemoryCacheClient()
    else:
        _cache_client = RedisCacheClient(url=settings.redis_url)
    return _cache_client


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.s3_endpoint:
        _storage_client = InMemoryStorageClient()
    else:
        _storage_client = S3StorageClient(
            region=settings.s3_region or "",
            endpoint=settings.s3_endpoint,
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
            public_base_url=settings.public_base_url or "",
        )
    return _storage_client


def get_cleanup_executor() -> ThreadPoolExecutor:
    global _cleanup_executor
    if _cleanup_executor is None:
        _cleanup_executor = new_cleanup_executor()
    return _cleanup_executor


def get_operation_context(settings: Settings = Depends(get_settings)) -> OperationContext:
    return OperationContext.with_timeout(settings.request_timeout_seconds)


def get_category_usecase(
    settings: Settings = Depends(get_settings),
    db: DbClient = Depends(get_db_client),
    cache: CacheClient = Depends(get_cache_client),
    storage: StorageClient = Depends(get_storage_client),
) -> CategoryUseCase:
    return CategoryUseCase(settings, db, cache, storage, cleanup_executor=get_cleanup_executor())


def get_story_usecase(
    settings: Settings = Depends(get_settings),
    db: DbClient = Depends(get_db_client),
    cache: CacheClient = Depends(get_cache_client),
    storage: StorageClient = Depends(get_storage_client),
) -> StoryUseCase:
    return StoryUseCase(settings, db, cache, storage, cleanup_executor=get_cleanup_executor())


def get_chapter_usecase(
    settings: Settings = Depends(get_settings),
    db: DbClient = Depends(get_db_client),
    cache: CacheClient = Depends(get_cache_client),
    storage: StorageClient = Depends(get_storage_client),
) -> ChapterUseCase:
    return ChapterUseCase(settings, db, cache, storage, cleanup_executor=get_cleanup_executor())


def get_preference_usecase(
    settings: Settings = Depends(get_settings),
    db: DbClient = Depends(get_db_client),
) -> PreferenceUseCase:
    return PreferenceUseCase(settings, db, cleanup_executor=get_cleanup_executor())


@dataclass(frozen=True)
class CurrentUser:
    user_id: str
    role: str


def get_current_user(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> CurrentUser:
    """
    Identity forwarded by the authenticating gateway in front of this service.
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return CurrentUser(user_id=x_user_id, role=x_user_role or "")


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if user.role != ROLE_ADMIN:
        raise HTTPException(status_code=403, detail="Access denied. Admins only.")
    return user
