"""Upload-to-dispatch orchestration for audio analysis jobs."""

from __future__ import annotations

from datetime import UTC, datetime
import logging
import re
from typing import BinaryIO

from app.adapters.storage import BlobStore, BlobStoreError
from app.core.logging_safety import redact_url
from app.errors import ApiError, resource_not_found
from app.repositories.memory import InMemoryStore, JobRecord, StoredFileRecord
from app.schemas.job import JobAccepted
from app.services.dispatch import WorkflowDispatcher
from app.services.jobs import JobService

logger = logging.getLogger(__name__)

ALLOWED_AUDIO_MIMETYPES = frozenset(
    {
        "audio/mpeg",
        "audio/mp3",
        "audio/mpeg3",
        "audio/x-mpeg-3",
        "application/octet-stream",
    }
)
_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class AudioAnalysisService:
    def __init__(
        self,
        *,
        store: InMemoryStore,
        blob_store: BlobStore,
        job_service: JobService,
        dispatcher: WorkflowDispatcher,
        max_upload_bytes: int,
        presigned_url_ttl_seconds: int | None = None,
    ) -> None:
        self._store = store
        self._blob_store = blob_store
        self._job_service = job_service
        self._dispatcher = dispatcher
        self._max_upload_bytes = max_upload_bytes
        self._presigned_url_ttl_seconds = presigned_url_ttl_seconds

    def upload_and_process(
        self,
        *,
        organization_id: str,
        filename: str,
        content_type: str | None,
        data: bytes,
    ) -> JobAccepted:
        mimetype = (content_type or "application/octet-stream").lower()
        self._validate_audio(filename=filename, mimetype=mimetype, size=len(data))
        if self._store.get_organization(organization_id) is None:
            raise ApiError(
                status_code=404,
                code="TENANT_NOT_FOUND",
                message="Organization not found for limit validation",
                details={"organization_id": organization_id},
            )

        file_record = self._store_upload(
            organization_id=organization_id,
            filename=filename,
            mimetype=mimetype,
            data=data,
        )
        job = self.create_and_dispatch(organization_id=organization_id, file_id=file_record.id)
        return JobAccepted(
            job_id=job.id,
            file_id=file_record.id,
            status=job.status,
            message="File uploaded successfully, processing started",
        )

    def read_upload(self, stream: BinaryIO, *, declared_size: int | None = None) -> bytes:
        """Read an upload body, never buffering more than one byte past the limit."""
        if declared_size is not None and declared_size > self._max_upload_bytes:
            raise self._too_large(declared_size)
        data = stream.read(self._max_upload_bytes + 1)
        if len(data) > self._max_upload_bytes:
            raise self._too_large(declared_size)
        return data

    def create_and_dispatch(self, *, organization_id: str, file_id: str) -> JobRecord:
        """Admit, create and trigger a job; a failed trigger leaves the job ``failed`` and raises."""
        job = self._job_service.create_job(organization_id=organization_id, file_id=file_id)
        file_record = self._store.get_file(file_id)
        if file_record is None:
            raise resource_not_found()

        try:
            file_url = self._file_url_for(file_record)
        except BlobStoreError as exc:
            logger.error("upload.presign_failed job_id=%s file_id=%s cause=%s", job.id, file_id, exc)
            self._job_service.mark_failed(job.id, f"dispatch failed: could not sign file URL: {exc}")
            raise ApiError(status_code=503, code="STORAGE_UNAVAILABLE", message="Failed to sign file URL") from exc
        return self._dispatcher.dispatch(job_id=job.id, file_url=file_url)

    def _validate_audio(self, *, filename: str, mimetype: str, size: int) -> None:
        if size == 0:
            raise self._upload_invalid("File is empty")
        if mimetype not in ALLOWED_AUDIO_MIMETYPES and not filename.lower().endswith(".mp3"):
            raise self._upload_invalid("Only MP3 files are allowed", mimetype=mimetype)
        if size > self._max_upload_bytes:
            raise self._too_large(size)

    def _store_upload(
        self,
        *,
        organization_id: str,
        filename: str,
        mimetype: str,
        data: bytes,
    ) -> StoredFileRecord:
        stamp = int(datetime.now(UTC).timestamp() * 1000)
        safe_name = _UNSAFE_KEY_CHARS.sub("_", filename).strip("_") or "audio.mp3"
        key = f"{organization_id}/{stamp}-{safe_name}"

        try:
            blob = self._blob_store.put(key=key, data=data, content_type=mimetype)
        except BlobStoreError as exc:
            logger.error("upload.storage_failed organization_id=%s key=%s cause=%s", organization_id, key, exc)
            raise ApiError(status_code=503, code="STORAGE_UNAVAILABLE", message="Failed to store file") from exc

        try:
            record = self._store.create_file(
                organization_id=organization_id,
                filename=filename,
                url=blob.url,
                size=blob.size,
                mimetype=mimetype,
                storage_key=blob.key,
            )
        except Exception:
            try:
                self._blob_store.delete(blob.key)
            except BlobStoreError as cleanup_exc:
                logger.error("upload.cleanup_failed key=%s cause=%s", blob.key, cleanup_exc)
            raise

        logger.info(
            "upload.stored organization_id=%s file_id=%s size=%s url=%s",
            organization_id,
            record.id,
            record.size,
            redact_url(record.url),
        )
        return record

    def _file_url_for(self, file_record: StoredFileRecord) -> str:
        if self._presigned_url_ttl_seconds is None:
            return file_record.url
        return self._blob_store.presign(file_record.storage_key, expires_in=self._presigned_url_ttl_seconds)

    def _too_large(self, size: int | None) -> ApiError:
        if size is None:
            return self._upload_invalid("File size exceeds the upload limit", max_bytes=self._max_upload_bytes)
        return self._upload_invalid("File size exceeds the upload limit", size=size, max_bytes=self._max_upload_bytes)

    @staticmethod
    def _upload_invalid(message: str, **details: object) -> ApiError:
        return ApiError(status_code=400, code="UPLOAD_INVALID", message=message, details=details or None)
