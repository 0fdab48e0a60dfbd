"""Job API schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class FileInfo(BaseModel):
    id: str
    filename: str
    size: int
    mimetype: str


class Job(BaseModel):
    """Read-only projection of a job row for status queries."""

    id: str
    organization_id: str
    status: JobStatus
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None
    file: FileInfo | None = None


class JobList(BaseModel):
    jobs: list[Job]
    total: int
    limit: int
    offset: int


class JobStats(BaseModel):
    stats: dict[JobStatus, int]
    active_job_count: int
    max_concurrent_jobs: int


class CreateJobRequest(BaseModel):
    file_id: str = Field(min_length=1)


class JobAccepted(BaseModel):
    job_id: str
    file_id: str
    status: JobStatus
    message: str
