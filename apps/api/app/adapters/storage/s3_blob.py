"""S3-compatible blob store (AWS S3, Cloudflare R2, MinIO)."""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

from app.adapters.storage.base import BlobStore, BlobStoreError, StoredBlob


class S3BlobStore(BlobStore):
    def __init__(
        self,
        *,
        bucket: str,
        endpoint_url: str | None = None,
        region: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        public_base_url: str | None = None,
    ) -> None:
        try:
            import boto3
        except ImportError as exc:  # pragma: no cover - depends on optional package
            raise BlobStoreError("boto3 is required for the s3 storage backend") from exc

        session = boto3.session.Session(
            aws_access_key_id=access_key or None,
            aws_secret_access_key=secret_key or None,
            region_name=region or None,
        )
        self._client: Any = session.client("s3", endpoint_url=endpoint_url or None)
        self._bucket = bucket
        self._endpoint_url = endpoint_url
        self._public_base_url = public_base_url.rstrip("/") if public_base_url else None

    def put(self, *, key: str, data: bytes, content_type: str) -> StoredBlob:
        try:
            self._client.put_object(Bucket=self._bucket, Key=key, Body=data, ContentType=content_type)
        except Exception as exc:  # pragma: no cover - provider exception surface
            raise BlobStoreError(f"failed to store object: {exc}") from exc
        return StoredBlob(key=key, url=self._url_for(key), size=len(data), content_type=content_type)

    def get(self, key: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self._bucket, Key=key)
            return response["Body"].read()
        except Exception as exc:  # pragma: no cover - provider exception surface
            raise BlobStoreError(f"failed to read object: {exc}") from exc

    def presign(self, key: str, *, expires_in: int) -> str:
        try:
            return self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self._bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except Exception as exc:  # pragma: no cover - provider exception surface
            raise BlobStoreError(f"failed to presign object: {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self._bucket, Key=key)
        except Exception as exc:  # pragma: no cover - provider exception surface
            raise BlobStoreError(f"failed to delete object: {exc}") from exc

    def _url_for(self, key: str) -> str:
        if self._public_base_url:
            return f"{self._public_base_url}/{quote(key)}"
        if self._endpoint_url:
            return f"{self._endpoint_url.rstrip('/')}/{self._bucket}/{quote(key)}"
        return f"https://{self._bucket}.s3.amazonaws.com/{quote(key)}"


__all__ = ["S3BlobStore"]
