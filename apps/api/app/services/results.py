"""Analysis result read models."""

from datetime import UTC, datetime, timedelta
import math
from typing import Literal

from app.errors import ApiError, resource_not_found
from app.repositories.memory import AnalysisResultRecord, InMemoryStore
from app.schemas.result import (
    AnalysisJob,
    AnalysisJobFile,
    AnalysisResult,
    AnalysisResultPage,
    AnalysisResultStats,
)

_PAGE_LIMIT_MAX = 100
_RECENT_WINDOW = timedelta(days=30)


class ResultService:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def get_result(self, *, job_id: str, organization_id: str | None) -> AnalysisResult:
        if self._store.get_job_for_organization(job_id, organization_id) is None:
            raise resource_not_found()
        record = self._store.get_result_for_job(job_id, organization_id)
        if record is None:
            raise resource_not_found()
        return self._to_result(record)

    def list_results(
        self,
        *,
        organization_id: str,
        page: int,
        limit: int,
        sort_order: Literal["asc", "desc"],
    ) -> AnalysisResultPage:
        if page < 1 or limit < 1 or limit > _PAGE_LIMIT_MAX:
            raise ApiError(
                status_code=400,
                code="VALIDATION_ERROR",
                message="Invalid pagination parameters",
                details={"page": page, "limit": limit, "max_limit": _PAGE_LIMIT_MAX},
            )

        records = self._store.list_results_for_organization(organization_id)
        records.sort(key=lambda record: record.created_at, reverse=sort_order == "desc")
        start = (page - 1) * limit
        return AnalysisResultPage(
            data=[self._to_result(record) for record in records[start : start + limit]],
            total=len(records),
            page=page,
            limit=limit,
            total_pages=math.ceil(len(records) / limit),
        )

    def get_stats(self, *, organization_id: str) -> AnalysisResultStats:
        records = self._store.list_results_for_organization(organization_id)
        recent_cutoff = datetime.now(UTC) - _RECENT_WINDOW
        distribution: dict[str, int] = {}
        for record in records:
            distribution[record.sentiment] = distribution.get(record.sentiment, 0) + 1
        return AnalysisResultStats(
            total_results=len(records),
            recent_results=sum(1 for record in records if record.created_at >= recent_cutoff),
            sentiment_distribution=distribution,
        )

    def _to_result(self, record: AnalysisResultRecord) -> AnalysisResult:
        job = self._store.get_job(record.job_id)
        if job is None:
            raise resource_not_found()
        file_record = self._store.get_file(job.file_id)
        return AnalysisResult(
            id=record.id,
            job_id=record.job_id,
            transcript=record.transcript,
            sentiment=record.sentiment,
            metadata=record.metadata,
            created_at=record.created_at,
            job=AnalysisJob(
                id=record.job_id,
                status=job.status,
                file=(
                    AnalysisJobFile(filename=file_record.filename, size=file_record.size)
                    if file_record is not None
                    else None
                ),
            ),
        )
