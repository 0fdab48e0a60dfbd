"""Out-of-band failure of jobs that never heard back from the workflow engine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
import logging

from app.core.config import Settings
from app.repositories.memory import InMemoryStore
from app.services.jobs import JobService

logger = logging.getLogger(__name__)

STALE_JOB_ERROR = "timed out waiting for workflow result"


@dataclass(frozen=True, slots=True)
class ReaperPolicy:
    # None keeps stuck jobs active indefinitely.
    stale_after: timedelta | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> ReaperPolicy:
        if settings.stale_job_timeout_seconds is None:
            return cls()
        return cls(stale_after=timedelta(seconds=settings.stale_job_timeout_seconds))


class StaleJobReaper:
    def __init__(self, store: InMemoryStore, job_service: JobService, policy: ReaperPolicy) -> None:
        self._store = store
        self._job_service = job_service
        self._policy = policy

    @property
    def policy(self) -> ReaperPolicy:
        return self._policy

    @property
    def enabled(self) -> bool:
        return self._policy.stale_after is not None

    def reap(self, *, now: datetime | None = None) -> list[str]:
        """Fail every pending/processing job idle longer than the policy allows."""
        if self._policy.stale_after is None:
            logger.info("reaper.skipped reason=disabled")
            return []

        cutoff = (now or datetime.now(UTC)) - self._policy.stale_after
        reaped: list[str] = []
        for job in self._store.list_stale_active_jobs(updated_before=cutoff):
            with self._store.job_guard(job.id):
                # A callback may have touched the job since it was listed.
                if job.updated_at >= cutoff:
                    continue
                outcome = self._job_service.mark_failed(job.id, STALE_JOB_ERROR)
            if outcome.applied:
                reaped.append(job.id)

        logger.info("reaper.completed reaped=%s cutoff=%s", len(reaped), cutoff.isoformat())
        return reaped
