"""In-memory repositories used by the API scaffold and tests."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
import threading
from typing import Any
from uuid import uuid4

from app.domain.job_fsm import ACTIVE_STATES, TERMINAL_STATES, ensure_transition
from app.schemas.job import JobStatus


@dataclass(slots=True)
class OrganizationRecord:
    id: str
    name: str
    created_at: datetime
    max_concurrent_jobs: int | None = None


@dataclass(slots=True)
class StoredFileRecord:
    id: str
    organization_id: str
    filename: str
    url: str
    size: int
    mimetype: str
    storage_key: str
    created_at: datetime


@dataclass(slots=True)
class JobRecord:
    id: str
    organization_id: str
    file_id: str
    status: JobStatus
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None


@dataclass(slots=True)
class AnalysisResultRecord:
    id: str
    job_id: str
    organization_id: str
    transcript: str
    sentiment: str
    metadata: dict[str, Any] | None
    created_at: datetime


@dataclass(slots=True)
class TransitionOutcome:
    job: JobRecord
    previous_status: JobStatus
    applied: bool


class KeyedLocks:
    """Locks keyed by id; an entry lives only while some caller holds or awaits it."""

    def __init__(self, factory: Callable[[], Any]) -> None:
        self._factory = factory
        self._registry_lock = threading.Lock()
        self._entries: dict[str, list[Any]] = {}

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._entries)

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._registry_lock:
            entry = self._entries.setdefault(key, [self._factory(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._registry_lock:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[key]


@dataclass(slots=True)
class InMemoryStore:
    """Simple, deterministic persistence layer for scaffolding and tests.

    Writes to one job are serialized by a per-job reentrant lock, and
    admissions for one tenant by a per-tenant lock, so callers can compose
    read-check-write sequences without losing updates.
    """

    organizations: dict[str, OrganizationRecord] = field(default_factory=dict)
    files: dict[str, StoredFileRecord] = field(default_factory=dict)
    jobs: dict[str, JobRecord] = field(default_factory=dict)
    results_by_job: dict[str, AnalysisResultRecord] = field(default_factory=dict)
    job_write_count: int = 0
    result_write_count: int = 0
    job_write_failure_message: str | None = None
    _job_locks: KeyedLocks = field(default_factory=lambda: KeyedLocks(threading.RLock), repr=False)
    _tenant_locks: KeyedLocks = field(default_factory=lambda: KeyedLocks(threading.Lock), repr=False)

    def create_organization(
        self,
        name: str,
        *,
        max_concurrent_jobs: int | None = None,
        organization_id: str | None = None,
    ) -> OrganizationRecord:
        organization = OrganizationRecord(
            id=organization_id or str(uuid4()),
            name=name,
            created_at=datetime.now(UTC),
            max_concurrent_jobs=max_concurrent_jobs,
        )
        self.organizations[organization.id] = organization
        return organization

    def get_organization(self, organization_id: str) -> OrganizationRecord | None:
        return self.organizations.get(organization_id)

    def create_file(
        self,
        *,
        organization_id: str,
        filename: str,
        url: str,
        size: int,
        mimetype: str,
        storage_key: str,
    ) -> StoredFileRecord:
        record = StoredFileRecord(
            id=str(uuid4()),
            organization_id=organization_id,
            filename=filename,
            url=url,
            size=size,
            mimetype=mimetype,
            storage_key=storage_key,
            created_at=datetime.now(UTC),
        )
        self.files[record.id] = record
        return record

    def get_file(self, file_id: str) -> StoredFileRecord | None:
        return self.files.get(file_id)

    @contextmanager
    def tenant_admission(self, organization_id: str) -> Iterator[None]:
        """Serialize count-then-insert admission for one tenant."""
        with self._tenant_locks.hold(organization_id):
            yield

    @contextmanager
    def job_guard(self, job_id: str) -> Iterator[None]:
        """Serialize writers for one job; reentrant so guarded blocks can call store writes."""
        with self._job_locks.hold(job_id):
            yield

    def count_active_jobs(self, organization_id: str) -> int:
        return sum(
            1
            for record in list(self.jobs.values())
            if record.organization_id == organization_id and record.status in ACTIVE_STATES
        )

    def count_jobs_by_status(self, organization_id: str) -> dict[JobStatus, int]:
        counts: dict[JobStatus, int] = {}
        for record in list(self.jobs.values()):
            if record.organization_id != organization_id:
                continue
            counts[record.status] = counts.get(record.status, 0) + 1
        return counts

    def insert_job(self, *, organization_id: str, file_id: str) -> JobRecord:
        self._maybe_raise_write_failure()
        now = datetime.now(UTC)
        job = JobRecord(
            id=str(uuid4()),
            organization_id=organization_id,
            file_id=file_id,
            status=JobStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        self.jobs[job.id] = job
        self.job_write_count += 1
        return job

    def get_job(self, job_id: str) -> JobRecord | None:
        return self.jobs.get(job_id)

    def get_job_for_organization(self, job_id: str, organization_id: str | None) -> JobRecord | None:
        job = self.jobs.get(job_id)
        if job is None:
            return None
        if organization_id is not None and job.organization_id != organization_id:
            return None
        return job

    def list_jobs_for_organization(
        self,
        organization_id: str,
        *,
        status: JobStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[JobRecord], int]:
        jobs = [
            record
            for record in list(self.jobs.values())
            if record.organization_id == organization_id and (status is None or record.status is status)
        ]
        jobs.sort(key=lambda record: record.created_at, reverse=True)
        return jobs[offset : offset + limit], len(jobs)

    def list_stale_active_jobs(self, *, updated_before: datetime) -> list[JobRecord]:
        stale = [
            record
            for record in list(self.jobs.values())
            if record.status in ACTIVE_STATES and record.updated_at < updated_before
        ]
        stale.sort(key=lambda record: record.updated_at)
        return stale

    def transition_job_status(
        self,
        *,
        job_id: str,
        new_status: JobStatus,
        error: str | None = None,
        tolerate_terminal: bool = False,
    ) -> TransitionOutcome:
        """Apply an FSM-validated status mutation and stamp lifecycle timestamps.

        With ``tolerate_terminal`` a job that already reached a terminal state
        is left untouched and reported as not applied instead of raising.
        """
        with self.job_guard(job_id):
            job = self.jobs.get(job_id)
            if job is None:
                raise KeyError(job_id)

            previous_status = job.status
            if tolerate_terminal and previous_status in TERMINAL_STATES:
                return TransitionOutcome(job=job, previous_status=previous_status, applied=False)

            ensure_transition(previous_status, new_status)
            self._maybe_raise_write_failure()

            now = datetime.now(UTC)
            job.status = new_status
            job.updated_at = now
            if new_status is JobStatus.PROCESSING and job.started_at is None:
                job.started_at = now
            if new_status in TERMINAL_STATES:
                job.completed_at = now
            if new_status is JobStatus.FAILED:
                job.error = error or "Job failed"
            self.job_write_count += 1
            return TransitionOutcome(job=job, previous_status=previous_status, applied=True)

    def create_result_once(
        self,
        *,
        job_id: str,
        organization_id: str,
        transcript: str,
        sentiment: str,
        metadata: dict[str, Any] | None,
    ) -> tuple[AnalysisResultRecord, bool]:
        """Insert the job's analysis result unless one exists; return it and whether it was created."""
        with self.job_guard(job_id):
            existing = self.results_by_job.get(job_id)
            if existing is not None:
                return existing, False

            record = AnalysisResultRecord(
                id=str(uuid4()),
                job_id=job_id,
                organization_id=organization_id,
                transcript=transcript,
                sentiment=sentiment,
                metadata=dict(metadata) if metadata is not None else None,
                created_at=datetime.now(UTC),
            )
            self.results_by_job[job_id] = record
            self.result_write_count += 1
            return record, True

    def get_result_for_job(self, job_id: str, organization_id: str | None = None) -> AnalysisResultRecord | None:
        result = self.results_by_job.get(job_id)
        if result is None:
            return None
        if organization_id is not None and result.organization_id != organization_id:
            return None
        return result

    def list_results_for_organization(self, organization_id: str) -> list[AnalysisResultRecord]:
        return [record for record in list(self.results_by_job.values()) if record.organization_id == organization_id]

    def _maybe_raise_write_failure(self) -> None:
        if self.job_write_failure_message is None:
            return
        message = self.job_write_failure_message
        self.job_write_failure_message = None
        raise RuntimeError(message)
