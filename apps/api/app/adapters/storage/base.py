"""Blob store interfaces."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


class BlobStoreError(Exception):
    """Raised when the blob store cannot complete an operation."""


@dataclass(frozen=True, slots=True)
class StoredBlob:
    key: str
    url: str
    size: int
    content_type: str


class BlobStore(ABC):
    """Provider-neutral binary storage for uploaded audio."""

    @abstractmethod
    def put(self, *, key: str, data: bytes, content_type: str) -> StoredBlob:
        """Store bytes under ``key`` and return its location."""

    @abstractmethod
    def get(self, key: str) -> bytes:
        """Return stored bytes or raise ``BlobStoreError``."""

    @abstractmethod
    def presign(self, key: str, *, expires_in: int) -> str:
        """Return a time-limited URL the workflow engine can fetch."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove the object; missing keys are not an error."""


__all__ = ["BlobStore", "BlobStoreError", "StoredBlob"]
