"""Reconciliation of asynchronous workflow engine callbacks into job state."""

from dataclasses import dataclass
import logging

from app.domain.callbacks import CallbackOutcomeError, parse_callback_outcome
from app.domain.job_fsm import ensure_transition
from app.errors import ApiError, resource_not_found
from app.repositories.memory import InMemoryStore
from app.schemas.internal import CompletedCallback, FailedCallback, WorkflowCallbackRequest
from app.schemas.job import JobStatus
from app.services.jobs import JobService

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_ERROR = "Unknown error from workflow engine"


@dataclass(slots=True)
class CallbackProcessResult:
    job_id: str
    current_status: JobStatus
    replayed: bool
    result_created: bool = False


class CallbackReconciler:
    """Idempotently merges callbacks into job and result state.

    Duplicate or late callbacks against an already terminal job are absorbed
    as replays; they never raise and never overwrite the stored outcome.
    """

    def __init__(self, store: InMemoryStore, job_service: JobService) -> None:
        self._store = store
        self._job_service = job_service

    def reconcile(self, payload: WorkflowCallbackRequest) -> CallbackProcessResult:
        job_id = payload.job_id
        job = self._store.get_job(job_id)
        if job is None:
            logger.warning("callback.rejected job_id=%s code=RESOURCE_NOT_FOUND", job_id)
            raise resource_not_found()

        try:
            outcome = parse_callback_outcome(payload)
        except CallbackOutcomeError as exc:
            # Rejected callbacks still resolve the job so it stops holding a concurrency slot.
            self._job_service.mark_failed(job_id, exc.job_error)
            logger.warning(
                "callback.rejected job_id=%s code=%s status=%s",
                job_id,
                exc.code,
                payload.status,
            )
            raise ApiError(
                status_code=400,
                code=exc.code,
                message=exc.message,
                details={"job_id": job_id},
            ) from exc

        if isinstance(outcome, CompletedCallback):
            return self._apply_completed(outcome)
        return self._apply_failed(outcome)

    def _apply_completed(self, outcome: CompletedCallback) -> CallbackProcessResult:
        job_id = outcome.job_id
        with self._store.job_guard(job_id):
            job = self._store.get_job(job_id)
            if job is None:
                raise resource_not_found()

            if job.status is JobStatus.FAILED:
                logger.warning(
                    "callback.replayed job_id=%s current_status=%s attempted_status=completed reason=terminal",
                    job_id,
                    job.status.value,
                )
                return CallbackProcessResult(job_id=job_id, current_status=job.status, replayed=True)

            if job.status is JobStatus.PENDING:
                # Result outran the dispatch ack; the late ack finds a terminal job and is a no-op.
                self._job_service.mark_processing(job_id)
                logger.info("callback.ack_implied job_id=%s prev_status=pending", job_id)
            elif job.status is not JobStatus.COMPLETED:
                # Surfaces FSM_TRANSITION_INVALID before any result row is written.
                ensure_transition(job.status, JobStatus.COMPLETED)

            _, created = self._store.create_result_once(
                job_id=job_id,
                organization_id=job.organization_id,
                transcript=outcome.transcript,
                sentiment=outcome.sentiment,
                metadata=outcome.metadata,
            )
            transition = self._job_service.mark_completed(job_id)

        replayed = not created and not transition.applied
        if created:
            logger.info("callback.result_stored job_id=%s sentiment=%s", job_id, outcome.sentiment)
        else:
            logger.warning("callback.result_exists job_id=%s action=skip_create", job_id)
        logger.info(
            "callback.%s job_id=%s prev_status=%s new_status=%s",
            "replayed" if replayed else "applied",
            job_id,
            transition.previous_status.value,
            transition.job.status.value,
        )
        return CallbackProcessResult(
            job_id=job_id,
            current_status=transition.job.status,
            replayed=replayed,
            result_created=created,
        )

    def _apply_failed(self, outcome: FailedCallback) -> CallbackProcessResult:
        error = (outcome.error or "").strip() or DEFAULT_FAILURE_ERROR
        transition = self._job_service.mark_failed(outcome.job_id, error)
        logger.info(
            "callback.%s job_id=%s prev_status=%s new_status=%s",
            "applied" if transition.applied else "replayed",
            outcome.job_id,
            transition.previous_status.value,
            transition.job.status.value,
        )
        return CallbackProcessResult(
            job_id=outcome.job_id,
            current_status=transition.job.status,
            replayed=not transition.applied,
        )
