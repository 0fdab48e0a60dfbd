"""API error response schemas."""

from typing import Any
from typing import Literal

from pydantic import BaseModel

from app.schemas.job import JobStatus


class ErrorResponse(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None


class TransitionErrorDetails(BaseModel):
    current_status: JobStatus
    attempted_status: JobStatus
    allowed_next_statuses: list[JobStatus] | None = None


class FsmTransitionError(BaseModel):
    code: Literal["FSM_TRANSITION_INVALID", "FSM_TERMINAL_IMMUTABLE"]
    message: str
    details: TransitionErrorDetails


class NoLeakNotFoundError(BaseModel):
    code: Literal["RESOURCE_NOT_FOUND"]
    message: str


class AdmissionDeniedErrorDetails(BaseModel):
    organization_id: str
    current_count: int
    max_limit: int


class AdmissionDeniedError(BaseModel):
    code: Literal["CONCURRENT_JOB_LIMIT_EXCEEDED"]
    message: str
    details: AdmissionDeniedErrorDetails


class TenantNotFoundError(BaseModel):
    code: Literal["TENANT_NOT_FOUND"]
    message: str
    details: dict[str, Any] | None = None


class FileOwnershipError(BaseModel):
    code: Literal["FILE_NOT_OWNED", "FILE_NOT_FOUND"]
    message: str


class UploadRejectedError(BaseModel):
    code: Literal["UPLOAD_INVALID"]
    message: str
    details: dict[str, Any] | None = None


class StorageUnavailableError(BaseModel):
    code: Literal["STORAGE_UNAVAILABLE"]
    message: str


class UpstreamDispatchError(BaseModel):
    code: Literal["WORKFLOW_DISPATCH_FAILED"]
    message: str
    details: dict[str, Any] | None = None


class CallbackRejectedError(BaseModel):
    code: Literal["CALLBACK_VALIDATION_FAILED", "CALLBACK_UNKNOWN_STATUS", "VALIDATION_ERROR"]
    message: str
    details: dict[str, Any] | None = None


class ForbiddenError(BaseModel):
    code: Literal["FORBIDDEN"]
    message: str
