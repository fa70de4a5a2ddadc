"""
Shared plumbing for the orchestration layer.

Use cases coordinate three backends that share no transaction: the relational
store, the blob store and the cache. Every helper here encodes one rule:

* store and blob calls on the primary path are checked against the request
  context and wrap unexpected failures in ``InternalError``;
* cache reads that fail are misses, cache writes that fail are logged;
* compensating cleanup runs on a separate executor, is bounded by
  ``cleanup_timeout_seconds`` and never raises.
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any, Callable, Iterable, Optional

from stories_backend.cache import CacheClient
from stories_backend.config import Settings
from stories_backend.context import OperationContext
from stories_backend.db import DbClient
from stories_backend.errors import BadInputError, InternalError, StoriesError
from stories_backend.media import Asset, AudioConversionError, convert_to_aac
from stories_backend.records import Slide, new_uuid
from stories_backend.storage import StorageClient

logger = logging.getLogger(__name__)

CleanupTask = tuple[str, Callable[..., Any], tuple]


def new_cleanup_executor() -> ThreadPoolExecutor:
    return ThreadPoolExecutor(max_workers=4, thread_name_prefix="stories-cleanup")


class UseCase:
    def __init__(
        self,
        settings: Settings,
        db: DbClient,
        cache: Optional[CacheClient] = None,
        storage: Optional[StorageClient] = None,
        *,
        cleanup_executor: Optional[ThreadPoolExecutor] = None,
        audio_converter: Callable[[Asset], Asset] = convert_to_aac,
    ):
        self.settings = settings
        self.db = db
        self.cache = cache
        self.storage = storage
        self.cleanup_executor = cleanup_executor or new_cleanup_executor()
        self.audio_converter = audio_converter

    # Primary path

    def _call_store(self, ctx: OperationContext, step: str, fn, *args, **kwargs):
        ctx.check(step)
        try:
            return fn(*args, **kwargs)
        except StoriesError:
            raise
        except Exception as exc:
            raise InternalError(f"failed to {step}", exc) from exc

    def _upload(self, ctx: OperationContext, asset: Asset, bucket: str, path: str) -> str:
        if self.storage is None:
            raise InternalError("object storage is not configured")
        ctx.check(f"upload of {path}")
        try:
            return self.storage.upload(asset.data, bucket, path, asset.content_type)
        except Exception as exc:
            raise InternalError(f"failed to upload {path}", exc) from exc

    # Cache

    def _cache_get_json(self, key: str) -> Optional[Any]:
        if self.cache is None:
            return None
        try:
            cached = self.cache.get(key)
        except Exception:
            logger.warning("Cache read failed for %s, treating as miss", key, exc_info=True)
            return None
        if not cached:
            return None
        try:
            return json.loads(cached)
        except ValueError:
            logger.warning("Discarding undecodable cache entry %s", key)
            return None

    def _cache_set_json(self, key: str, value: Any, ttl: int) -> None:
        if self.cache is None:
            return
        try:
            self.cache.set(key, json.dumps(value), ttl)
        except Exception:
            logger.warning("Cache write failed for %s", key, exc_info=True)

    def _invalidate(self, *prefixes: str) -> None:
        # Runs after a committed mutation, so it ignores request cancellation.
        if self.cache is None:
            return
        for prefix in prefixes:
            try:
                self.cache.delete_prefix(prefix)
            except Exception:
                logger.warning("Cache invalidation failed for prefix %s", prefix, exc_info=True)

    # Compensation

    def _run_cleanup(self, tasks: Iterable[CleanupTask]) -> None:
        futures = {}
        for label, fn, args in tasks:
            futures[self.cleanup_executor.submit(fn, *args)] = label
        if not futures:
            return
        done, pending = wait(futures, timeout=self.settings.cleanup_timeout_seconds)
        for future in done:
            exc = future.exception()
            if exc is not None:
                logger.error("Cleanup step '%s' failed", futures[future], exc_info=exc)
        for future in pending:
            logger.warning(
                "Cleanup step '%s' did not finish within %.1fs",
                futures[future],
                self.settings.cleanup_timeout_seconds,
            )

    def _delete_blobs(self, urls: Iterable[str]) -> None:
        if self.storage is None:
            return
        self._run_cleanup(
            (f"delete blob {url}", self.storage.delete, (url,)) for url in urls if url
        )

    # Slides

    def _convert_audio(self, audio: Asset) -> Asset:
        try:
            return self.audio_converter(audio)
        except AudioConversionError as exc:
            raise BadInputError(f"failed to convert audio: {exc}") from exc

    def _create_slide(
        self,
        ctx: OperationContext,
        slide: Slide,
        image: Optional[Asset],
        audio: Optional[Asset],
    ) -> Slide:
        """Upload the slide assets, then run the guarded insert.

        Callers check the quota first. Any failure after an upload removes the
        blobs uploaded by this call.
        """
        settings = self.settings
        if audio:
            audio = self._convert_audio(audio)

        uploaded: list[str] = []
        try:
            if image:
                path = f"{settings.stories_slide_path}{new_uuid()}{image.extension}"
                slide.image_url = self._upload(ctx, image, settings.slide_images_bucket, path)
                uploaded.append(slide.image_url)
            if audio:
                path = f"{settings.stories_slide_path}{new_uuid()}{audio.extension}"
                slide.audio_url = self._upload(ctx, audio, settings.slide_audio_bucket, path)
                uploaded.append(slide.audio_url)
            return self._call_store(
                ctx, "insert slide", self.db.create_slide, slide, settings.slide_limit
            )
        except Exception:
            if uploaded:
                logger.warning("Slide write failed, removing %d uploaded blob(s)", len(uploaded))
                self._delete_blobs(uploaded)
            raise
