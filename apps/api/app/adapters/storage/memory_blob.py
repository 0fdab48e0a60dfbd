"""In-process blob store for local development and tests."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
import threading
from urllib.parse import quote

from app.adapters.storage.base import BlobStore, BlobStoreError, StoredBlob


class InMemoryBlobStore(BlobStore):
    def __init__(self, *, base_url: str = "memory://audio-uploads") -> None:
        self._base_url = base_url.rstrip("/")
        self._objects: dict[str, tuple[bytes, str]] = {}
        self._lock = threading.Lock()
        self.fail_next_put: str | None = None

    def put(self, *, key: str, data: bytes, content_type: str) -> StoredBlob:
        with self._lock:
            if self.fail_next_put is not None:
                message, self.fail_next_put = self.fail_next_put, None
                raise BlobStoreError(message)
            self._objects[key] = (bytes(data), content_type)
        return StoredBlob(key=key, url=self._url_for(key), size=len(data), content_type=content_type)

    def get(self, key: str) -> bytes:
        with self._lock:
            stored = self._objects.get(key)
        if stored is None:
            raise BlobStoreError(f"object not found: {key}")
        return stored[0]

    def presign(self, key: str, *, expires_in: int) -> str:
        if key not in self._objects:
            raise BlobStoreError(f"object not found: {key}")
        expires_at = int((datetime.now(UTC) + timedelta(seconds=expires_in)).timestamp())
        return f"{self._url_for(key)}?expires={expires_at}"

    def delete(self, key: str) -> None:
        with self._lock:
            self._objects.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return key in self._objects

    def _url_for(self, key: str) -> str:
        return f"{self._base_url}/{quote(key)}"


__all__ = ["InMemoryBlobStore"]
