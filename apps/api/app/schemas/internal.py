"""Workflow engine wire schemas: outbound trigger and inbound callbacks."""

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.schemas.job import JobStatus


class WorkflowTriggerPayload(BaseModel):
    """Body POSTed to the workflow engine webhook."""

    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(alias="jobId")
    file_url: str = Field(alias="fileUrl")
    timestamp: datetime


class WorkflowCallbackRequest(BaseModel):
    """Callback envelope as delivered by the workflow engine.

    ``status`` is deliberately loose here so unknown values still reach the
    reconciler, which fails the job before rejecting the callback.
    """

    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(alias="jobId", min_length=1)
    status: str
    transcript: str | None = None
    sentiment: str | None = None
    metadata: dict[str, Any] | None = None
    error: str | None = None

    @field_validator("metadata", mode="before")
    @classmethod
    def _empty_metadata_is_null(cls, value: Any) -> Any:
        return value or None


class CompletedCallback(BaseModel):
    status: Literal["completed"]
    job_id: str
    transcript: str
    sentiment: str
    metadata: dict[str, Any] | None = None

    @field_validator("transcript", "sentiment")
    @classmethod
    def _require_text(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value


class FailedCallback(BaseModel):
    status: Literal["failed"]
    job_id: str
    error: str | None = None


CallbackOutcome = Annotated[Union[CompletedCallback, FailedCallback], Field(discriminator="status")]


class CallbackAck(BaseModel):
    success: bool
    message: str
    job_id: str
    status: JobStatus
    replayed: bool


class ReapStaleResponse(BaseModel):
    reaped_job_ids: list[str]
    stale_after_seconds: float | None = None
