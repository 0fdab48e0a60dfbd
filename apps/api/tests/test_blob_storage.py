"""Blob store adapter tests."""

from __future__ import annotations

import io
import sys
import unittest
from unittest.mock import MagicMock, patch

from app.adapters.storage import BlobStoreError, InMemoryBlobStore, S3BlobStore


class InMemoryBlobStoreTests(unittest.TestCase):
    def test_put_get_and_delete(self) -> None:
        store = InMemoryBlobStore(base_url="memory://bucket/")

        blob = store.put(key="org-1/1700000000000-call.mp3", data=b"ID3audio", content_type="audio/mpeg")

        self.assertEqual(blob.url, "memory://bucket/org-1/1700000000000-call.mp3")
        self.assertEqual(blob.size, 8)
        self.assertEqual(store.get(blob.key), b"ID3audio")
        self.assertIn(blob.key, store)

        store.delete(blob.key)

        self.assertNotIn(blob.key, store)
        with self.assertRaises(BlobStoreError):
            store.get(blob.key)

    def test_presign_requires_existing_object(self) -> None:
        store = InMemoryBlobStore()
        store.put(key="org-1/a.mp3", data=b"x", content_type="audio/mpeg")

        url = store.presign("org-1/a.mp3", expires_in=300)

        self.assertTrue(url.startswith("memory://audio-uploads/org-1/a.mp3?expires="))
        with self.assertRaises(BlobStoreError):
            store.presign("org-1/missing.mp3", expires_in=300)

    def test_fail_next_put_raises_once(self) -> None:
        store = InMemoryBlobStore()
        store.fail_next_put = "disk full"

        with self.assertRaises(BlobStoreError):
            store.put(key="k", data=b"x", content_type="audio/mpeg")
        store.put(key="k", data=b"x", content_type="audio/mpeg")

        self.assertIn("k", store)


class S3BlobStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = MagicMock()
        self.fake_boto3 = MagicMock()
        self.fake_boto3.session.Session.return_value.client.return_value = self.client
        patcher = patch.dict(sys.modules, {"boto3": self.fake_boto3})
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_client_is_built_from_connection_settings(self) -> None:
        S3BlobStore(
            bucket="audio",
            endpoint_url="https://account.r2.cloudflarestorage.com",
            region="auto",
            access_key="ak",
            secret_key="sk",
        )

        self.fake_boto3.session.Session.assert_called_once_with(
            aws_access_key_id="ak",
            aws_secret_access_key="sk",
            region_name="auto",
        )
        self.fake_boto3.session.Session.return_value.client.assert_called_once_with(
            "s3",
            endpoint_url="https://account.r2.cloudflarestorage.com",
        )

    def test_put_uploads_object_and_builds_public_url(self) -> None:
        store = S3BlobStore(bucket="audio", public_base_url="https://cdn.example.com/")

        blob = store.put(key="org-1/1-call.mp3", data=b"abc", content_type="audio/mpeg")

        self.client.put_object.assert_called_once_with(
            Bucket="audio",
            Key="org-1/1-call.mp3",
            Body=b"abc",
            ContentType="audio/mpeg",
        )
        self.assertEqual(blob.url, "https://cdn.example.com/org-1/1-call.mp3")
        self.assertEqual(blob.size, 3)

    def test_url_falls_back_to_endpoint_then_aws_host(self) -> None:
        with_endpoint = S3BlobStore(bucket="audio", endpoint_url="http://minio:9000/")
        aws = S3BlobStore(bucket="audio")

        self.assertEqual(
            with_endpoint.put(key="a.mp3", data=b"x", content_type="audio/mpeg").url,
            "http://minio:9000/audio/a.mp3",
        )
        self.assertEqual(
            aws.put(key="a.mp3", data=b"x", content_type="audio/mpeg").url,
            "https://audio.s3.amazonaws.com/a.mp3",
        )

    def test_get_presign_and_delete_delegate_to_client(self) -> None:
        self.client.get_object.return_value = {"Body": io.BytesIO(b"payload")}
        self.client.generate_presigned_url.return_value = "https://signed.example/a.mp3?sig=1"
        store = S3BlobStore(bucket="audio")

        self.assertEqual(store.get("a.mp3"), b"payload")
        self.assertEqual(store.presign("a.mp3", expires_in=600), "https://signed.example/a.mp3?sig=1")
        store.delete("a.mp3")

        self.client.generate_presigned_url.assert_called_once_with(
            "get_object",
            Params={"Bucket": "audio", "Key": "a.mp3"},
            ExpiresIn=600,
        )
        self.client.delete_object.assert_called_once_with(Bucket="audio", Key="a.mp3")

    def test_provider_errors_are_wrapped(self) -> None:
        self.client.put_object.side_effect = RuntimeError("access denied")
        store = S3BlobStore(bucket="audio")

        with self.assertRaises(BlobStoreError) as context:
            store.put(key="a.mp3", data=b"x", content_type="audio/mpeg")

        self.assertIn("access denied", str(context.exception))


if __name__ == "__main__":
    unittest.main()
