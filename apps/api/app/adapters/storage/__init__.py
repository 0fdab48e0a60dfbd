"""Blob store adapters."""

from .base import BlobStore, BlobStoreError, StoredBlob
from .memory_blob import InMemoryBlobStore
from .s3_blob import S3BlobStore

__all__ = [
    "BlobStore",
    "BlobStoreError",
    "StoredBlob",
    "InMemoryBlobStore",
    "S3BlobStore",
]
