"""Internal workflow engine routes."""

from typing import Annotated

from fastapi import APIRouter, Body, Depends

from app.errors import ApiError
from app.routes.dependencies import get_callback_reconciler, get_stale_job_reaper, require_callback_secret
from app.schemas.error import CallbackRejectedError, ErrorResponse, FsmTransitionError, NoLeakNotFoundError
from app.schemas.internal import CallbackAck, ReapStaleResponse, WorkflowCallbackRequest
from app.services.internal_callbacks import CallbackReconciler
from app.services.reaper import StaleJobReaper

router = APIRouter(prefix="/internal", tags=["Internal"])

# Sync routes: store writes take thread locks that the dispatching routes also hold from the threadpool.


@router.post(
    "/audio-analysis/callback",
    response_model=CallbackAck,
    responses={
        400: {"model": CallbackRejectedError},
        401: {"model": ErrorResponse},
        404: {"model": NoLeakNotFoundError},
        409: {"model": FsmTransitionError},
    },
)
def post_audio_analysis_callback(
    payload: Annotated[WorkflowCallbackRequest | list[WorkflowCallbackRequest], Body()],
    __: Annotated[None, Depends(require_callback_secret)],
    reconciler: Annotated[CallbackReconciler, Depends(get_callback_reconciler)],
) -> CallbackAck:
    # The workflow engine batches single callbacks into arrays.
    if isinstance(payload, list):
        if not payload:
            raise ApiError(status_code=400, code="VALIDATION_ERROR", message="Invalid callback payload")
        payload = payload[0]

    result = reconciler.reconcile(payload)
    return CallbackAck(
        success=True,
        message="Callback already processed" if result.replayed else "Callback processed successfully",
        job_id=result.job_id,
        status=result.current_status,
        replayed=result.replayed,
    )


@router.post(
    "/jobs/reap-stale",
    response_model=ReapStaleResponse,
    responses={401: {"model": ErrorResponse}},
)
def reap_stale_jobs(
    __: Annotated[None, Depends(require_callback_secret)],
    reaper: Annotated[StaleJobReaper, Depends(get_stale_job_reaper)],
) -> ReapStaleResponse:
    reaped = reaper.reap()
    stale_after = reaper.policy.stale_after
    return ReapStaleResponse(
        reaped_job_ids=reaped,
        stale_after_seconds=stale_after.total_seconds() if stale_after is not None else None,
    )
