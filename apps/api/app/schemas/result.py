"""Analysis result API schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel

from app.schemas.job import JobStatus


class AnalysisJobFile(BaseModel):
    filename: str
    size: int


class AnalysisJob(BaseModel):
    id: str
    status: JobStatus
    file: AnalysisJobFile | None = None


class AnalysisResult(BaseModel):
    id: str
    job_id: str
    transcript: str
    sentiment: str
    metadata: dict[str, Any] | None = None
    created_at: datetime
    job: AnalysisJob


class AnalysisResultPage(BaseModel):
    data: list[AnalysisResult]
    total: int
    page: int
    limit: int
    total_pages: int


class AnalysisResultStats(BaseModel):
    total_results: int
    recent_results: int
    sentiment_distribution: dict[str, int]
