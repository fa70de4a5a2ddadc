"""
Cache abstraction for list caching.

Supports an in-memory fallback for tests/local runs and a Redis-backed
implementation for production.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Optional, Protocol

import redis

CATEGORY_LIST_KEY = "categories:all"
STORY_LIST_PREFIX = "stories:"


def story_list_key(page: int, limit: int, sort: str) -> str:
    return f"{STORY_LIST_PREFIX}p{page}:l{limit}:s{sort}"


class CacheClient(Protocol):
    """Minimal key/value interface used as a read-through cache."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str, ttl: int) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def delete_prefix(self, prefix: str) -> int:
        ...


@dataclass
class InMemoryCacheClient:
    """Dict-backed cache with per-key expiry for testing/dev."""

    items: dict[str, tuple[str, float]] = field(default_factory=dict)

    def __post_init__(self):
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self.items.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at <= time.monotonic():
                del self.items[key]
                return None
            return value

    def set(self, key: str, value: str, ttl: int) -> None:
        with self._lock:
            self.items[key] = (value, time.monotonic() + ttl)

    def delete(self, key: str) -> None:
        with self._lock:
            self.items.pop(key, None)

    def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [key for key in self.items if key.startswith(prefix)]
            for key in doomed:
                del self.items[key]
            return len(doomed)

    def reset(self) -> None:
        with self._lock:
            self.items.clear()


@dataclass
class RedisCacheClient:
    """Redis-backed cache. ``delete_prefix`` walks keys with SCAN, never KEYS."""

    url: str
    scan_count: int = 500

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url, decode_responses=True)

    def get(self, key: str) -> Optional[str]:
        return self.client.get(key)

    def set(self, key: str, value: str, ttl: int) -> None:
        self.client.set(key, value, ex=ttl)

    def delete(self, key: str) -> None:
        self.client.delete(key)

    def delete_prefix(self, prefix: str) -> int:
        deleted = 0
        batch: list[str] = []
        for key in self.client.scan_iter(match=f"{prefix}*", count=self.scan_count):
            batch.append(key)
            if len(batch) >= self.scan_count:
                deleted += self.client.delete(*batch)
                batch = []
        if batch:
            deleted += self.client.delete(*batch)
        return deleted
