"""
Storage abstraction for S3-compatible object stores and in-memory testing.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Optional, Protocol
from urllib.parse import urlparse

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


class StorageClient(Protocol):
    """Defines the operations the use cases need from object storage."""

    def upload(
        self, data: bytes, bucket: str, path: str, content_type: str | None = None
    ) -> str:
        ...

    def delete(self, url: str) -> None:
        ...


def build_public_url(base_url: str, bucket: str, path: str) -> str:
    return f"{base_url.rstrip('/')}/{bucket}/{path.lstrip('/')}"


def split_public_url(base_url: str, url: str) -> Optional[tuple[str, str]]:
    """Return ``(bucket, key)`` for a URL produced by ``build_public_url``."""
    base_path = urlparse(base_url).path.rstrip("/")
    parsed = urlparse(url)
    if parsed.netloc != urlparse(base_url).netloc:
        return None
    path = parsed.path
    if base_path:
        if not path.startswith(base_path + "/"):
            return None
        path = path[len(base_path):]
    bucket, _, key = path.lstrip("/").partition("/")
    if not bucket or not key:
        return None
    return bucket, key


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    base_url: str = "https://example.test/storage"
    stored_objects: dict = field(default_factory=dict)
    upload_calls: int = 0
    delete_calls: int = 0

    def __post_init__(self):
        self._lock = threading.Lock()

    def upload(
        self, data: bytes, bucket: str, path: str, content_type: str | None = None
    ) -> str:
        with self._lock:
            self.upload_calls += 1
            self.stored_objects[(bucket, path)] = bytes(data)
        return build_public_url(self.base_url, bucket, path)

    def delete(self, url: str) -> None:
        location = split_public_url(self.base_url, url)
        with self._lock:
            self.delete_calls += 1
            if location:
                self.stored_objects.pop(location, None)

    def exists(self, url: str) -> bool:
        location = split_public_url(self.base_url, url)
        return location is not None and location in self.stored_objects

    def reset(self) -> None:
        with self._lock:
            self.stored_objects.clear()
            self.upload_calls = 0
            self.delete_calls = 0


@dataclass
class S3StorageClient:
    """
    S3-compatible storage client (AWS S3, Tencent COS, MinIO, ...).
    """

    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str
    public_base_url: str = ""

    def __post_init__(self):
        config = Config(
            s3={"addressing_style": "path"},
            signature_version="s3v4",
            retries={"max_attempts": 3, "mode": "standard"},
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id or None,
            aws_secret_access_key=self.secret_access_key or None,
            config=config,
        )
        if not self.public_base_url:
            self.public_base_url = self.endpoint

    def upload(
        self, data: bytes, bucket: str, path: str, content_type: str | None = None
    ) -> str:
        # A single PutObject is never visible half-written.
        self._client.put_object(
            Bucket=bucket,
            Key=path,
            Body=data,
            ContentType=content_type or "application/octet-stream",
        )
        return build_public_url(self.public_base_url, bucket, path)

    def delete(self, url: str) -> None:
        location = split_public_url(self.public_base_url, url)
        if location is None:
            logger.warning("Skipping delete of %s: not served by this storage", url)
            return
        bucket, key = location
        try:
            self._client.delete_object(Bucket=bucket, Key=key)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code in ("NoSuchKey", "404"):
                return
            raise
