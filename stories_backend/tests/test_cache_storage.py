import time
import unittest
from unittest.mock import MagicMock, patch

from botocore.exceptions import ClientError

from stories_backend.cache import InMemoryCacheClient, RedisCacheClient, story_list_key
from stories_backend.context import OperationContext
from stories_backend.errors import OperationCancelledError
from stories_backend.storage import (
    InMemoryStorageClient,
    S3StorageClient,
    build_public_url,
    split_public_url,
)


class InMemoryCacheTests(unittest.TestCase):
    def test_expiry(self):
        cache = InMemoryCacheClient()
        cache.set("k", "v", ttl=60)
        self.assertEqual(cache.get("k"), "v")
        with patch("stories_backend.cache.time.monotonic", return_value=time.monotonic() + 61):
            self.assertIsNone(cache.get("k"))

    def test_delete_prefix(self):
        cache = InMemoryCacheClient()
        cache.set(story_list_key(1, 10, "title asc"), "[]", 60)
        cache.set(story_list_key(2, 10, "title asc"), "[]", 60)
        cache.set("categories:all", "[]", 60)
        self.assertEqual(cache.delete_prefix("stories:"), 2)
        self.assertEqual(list(cache.items), ["categories:all"])


class RedisCacheTests(unittest.TestCase):
    def test_delete_prefix_batches_scan_results(self):
        with patch("stories_backend.cache.redis.Redis.from_url") as from_url:
            client = from_url.return_value
            client.scan_iter.return_value = iter(["stories:a", "stories:b", "stories:c"])
            client.delete.side_effect = lambda *keys: len(keys)
            cache = RedisCacheClient(url="redis://localhost:6379/0", scan_count=2)
            self.assertEqual(cache.delete_prefix("stories:"), 3)
        client.scan_iter.assert_called_once_with(match="stories:*", count=2)
        self.assertEqual(client.delete.call_count, 2)

    def test_set_uses_ttl(self):
        with patch("stories_backend.cache.redis.Redis.from_url") as from_url:
            cache = RedisCacheClient(url="redis://localhost:6379/0")
            cache.set("k", "v", 300)
        from_url.return_value.set.assert_called_once_with("k", "v", ex=300)


class StorageTests(unittest.TestCase):
    def test_public_url_round_trip(self):
        url = build_public_url("https://cdn.test/base/", "thumbs", "stories/thumbnail/a.png")
        self.assertEqual(url, "https://cdn.test/base/thumbs/stories/thumbnail/a.png")
        self.assertEqual(
            split_public_url("https://cdn.test/base", url),
            ("thumbs", "stories/thumbnail/a.png"),
        )
        self.assertIsNone(split_public_url("https://other.test", url))

    def test_in_memory_upload_and_delete(self):
        storage = InMemoryStorageClient()
        url = storage.upload(b"data", "bucket", "a/b.png", "image/png")
        self.assertTrue(storage.exists(url))
        storage.delete(url)
        storage.delete(url)
        self.assertFalse(storage.exists(url))
        self.assertEqual(storage.delete_calls, 2)

    def _s3(self, client):
        with patch("stories_backend.storage.boto3.client", return_value=client):
            return S3StorageClient(
                region="ap-singapore",
                endpoint="https://cos.test",
                access_key_id="key",
                secret_access_key="secret",
            )

    def test_s3_upload_and_delete(self):
        client = MagicMock()
        storage = self._s3(client)
        url = storage.upload(b"x", "thumbs", "stories/a.png", "image/png")
        self.assertEqual(url, "https://cos.test/thumbs/stories/a.png")
        client.put_object.assert_called_once_with(
            Bucket="thumbs", Key="stories/a.png", Body=b"x", ContentType="image/png"
        )
        storage.delete(url)
        client.delete_object.assert_called_once_with(Bucket="thumbs", Key="stories/a.png")

    def test_s3_delete_of_missing_object_is_ignored(self):
        client = MagicMock()
        client.delete_object.side_effect = ClientError(
            {"Error": {"Code": "NoSuchKey"}}, "DeleteObject"
        )
        self._s3(client).delete("https://cos.test/thumbs/gone.png")

    def test_s3_delete_propagates_other_errors(self):
        client = MagicMock()
        client.delete_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied"}}, "DeleteObject"
        )
        with self.assertRaises(ClientError):
            self._s3(client).delete("https://cos.test/thumbs/a.png")

    def test_s3_delete_of_foreign_url_is_skipped(self):
        client = MagicMock()
        self._s3(client).delete("https://elsewhere.test/thumbs/a.png")
        client.delete_object.assert_not_called()


class OperationContextTests(unittest.TestCase):
    def test_cancel(self):
        ctx = OperationContext()
        ctx.check("anything")
        ctx.cancel()
        with self.assertRaises(OperationCancelledError):
            ctx.check("upload")

    def test_deadline(self):
        ctx = OperationContext.with_timeout(0)
        self.assertTrue(ctx.expired())
        self.assertEqual(ctx.remaining(), 0.0)
        self.assertIsNone(OperationContext().remaining())


if __name__ == "__main__":
    unittest.main()
