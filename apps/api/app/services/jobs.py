"""Job service layer: lifecycle transitions and job read models."""

import logging

from app.errors import ApiError, resource_not_found
from app.repositories.memory import InMemoryStore, JobRecord, TransitionOutcome
from app.schemas.job import FileInfo, Job, JobList, JobStats, JobStatus
from app.services.admission import TenantLimitGuard

logger = logging.getLogger(__name__)

_LIST_LIMIT_MIN = 1
_LIST_LIMIT_MAX = 100


class JobService:
    """Owns job creation and every job state transition."""

    def __init__(self, store: InMemoryStore, limit_guard: TenantLimitGuard) -> None:
        self._store = store
        self._limit_guard = limit_guard

    def create_job(self, *, organization_id: str, file_id: str) -> JobRecord:
        file_record = self._store.get_file(file_id)
        if file_record is None:
            raise ApiError(status_code=404, code="FILE_NOT_FOUND", message="File not found")
        if file_record.organization_id != organization_id:
            logger.warning(
                "job.rejected organization_id=%s file_id=%s code=FILE_NOT_OWNED",
                organization_id,
                file_id,
            )
            raise ApiError(
                status_code=403,
                code="FILE_NOT_OWNED",
                message="File does not belong to your organization",
            )

        # Count and insert under one tenant-scoped critical section.
        with self._store.tenant_admission(organization_id):
            decision = self._limit_guard.admit(organization_id)
            self._limit_guard.ensure_admitted(decision)
            record = self._store.insert_job(organization_id=organization_id, file_id=file_id)

        logger.info(
            "job.created job_id=%s organization_id=%s file_id=%s active_before=%s max=%s",
            record.id,
            organization_id,
            file_id,
            decision.current_count,
            decision.max_jobs,
        )
        return record

    def transition(
        self,
        *,
        job_id: str,
        new_status: JobStatus,
        error: str | None = None,
        tolerate_terminal: bool = False,
    ) -> TransitionOutcome:
        if self._store.get_job(job_id) is None:
            raise resource_not_found()

        try:
            outcome = self._store.transition_job_status(
                job_id=job_id,
                new_status=new_status,
                error=error,
                tolerate_terminal=tolerate_terminal,
            )
        except ApiError as exc:
            logger.warning(
                "job.transition_rejected job_id=%s code=%s attempted_status=%s",
                job_id,
                exc.payload.code,
                new_status.value,
            )
            raise

        if outcome.applied:
            logger.info(
                "job.transition_applied job_id=%s prev_status=%s new_status=%s",
                job_id,
                outcome.previous_status.value,
                outcome.job.status.value,
            )
        else:
            logger.info(
                "job.transition_absorbed job_id=%s current_status=%s attempted_status=%s",
                job_id,
                outcome.job.status.value,
                new_status.value,
            )
        return outcome

    def mark_processing(self, job_id: str) -> TransitionOutcome:
        return self.transition(job_id=job_id, new_status=JobStatus.PROCESSING, tolerate_terminal=True)

    def mark_completed(self, job_id: str) -> TransitionOutcome:
        return self.transition(job_id=job_id, new_status=JobStatus.COMPLETED, tolerate_terminal=True)

    def mark_failed(self, job_id: str, error: str) -> TransitionOutcome:
        return self.transition(job_id=job_id, new_status=JobStatus.FAILED, error=error, tolerate_terminal=True)

    def get_job(self, *, job_id: str, organization_id: str | None) -> Job:
        record = self._store.get_job_for_organization(job_id, organization_id)
        if record is None:
            raise resource_not_found()
        return self._to_job(record)

    def list_jobs(
        self,
        *,
        organization_id: str,
        status: JobStatus | None,
        limit: int,
        offset: int,
    ) -> JobList:
        if limit < _LIST_LIMIT_MIN or limit > _LIST_LIMIT_MAX or offset < 0:
            raise ApiError(
                status_code=400,
                code="VALIDATION_ERROR",
                message="Invalid job list query parameters",
                details={"limit": limit, "offset": offset, "max_limit": _LIST_LIMIT_MAX},
            )
        records, total = self._store.list_jobs_for_organization(
            organization_id,
            status=status,
            limit=limit,
            offset=offset,
        )
        return JobList(jobs=[self._to_job(record) for record in records], total=total, limit=limit, offset=offset)

    def get_job_stats(self, *, organization_id: str) -> JobStats:
        decision = self._limit_guard.usage(organization_id)
        counts = self._store.count_jobs_by_status(organization_id)
        return JobStats(
            stats={status: counts.get(status, 0) for status in JobStatus},
            active_job_count=decision.current_count,
            max_concurrent_jobs=decision.max_jobs,
        )

    def _to_job(self, record: JobRecord) -> Job:
        file_record = self._store.get_file(record.file_id)
        file_info = None
        if file_record is not None:
            file_info = FileInfo(
                id=file_record.id,
                filename=file_record.filename,
                size=file_record.size,
                mimetype=file_record.mimetype,
            )
        return Job(
            id=record.id,
            organization_id=record.organization_id,
            status=record.status,
            created_at=record.created_at,
            updated_at=record.updated_at,
            started_at=record.started_at,
            completed_at=record.completed_at,
            error=record.error,
            file=file_info,
        )
