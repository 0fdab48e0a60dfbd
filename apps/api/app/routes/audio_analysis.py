"""Audio analysis routes: upload, job status and result reads."""

from typing import Annotated, Literal

from fastapi import APIRouter, Depends, File, Path, Query, UploadFile, status

from app.routes.dependencies import (
    UPLOAD_ROLES,
    get_audio_analysis_service,
    get_authenticated_principal,
    get_job_service,
    get_result_service,
    require_roles,
)
from app.schemas.auth import AuthPrincipal
from app.schemas.error import (
    AdmissionDeniedError,
    ErrorResponse,
    FileOwnershipError,
    ForbiddenError,
    NoLeakNotFoundError,
    StorageUnavailableError,
    TenantNotFoundError,
    UploadRejectedError,
    UpstreamDispatchError,
)
from app.schemas.job import CreateJobRequest, Job, JobAccepted, JobList, JobStats, JobStatus
from app.schemas.result import AnalysisResult, AnalysisResultPage, AnalysisResultStats
from app.services.audio_analysis import AudioAnalysisService
from app.services.jobs import JobService
from app.services.results import ResultService

router = APIRouter(prefix="/audio-analysis", tags=["Audio Analysis"])

_CREATE_RESPONSES = {
    401: {"model": ErrorResponse},
    403: {"model": FileOwnershipError | ForbiddenError},
    404: {"model": TenantNotFoundError | FileOwnershipError},
    429: {"model": AdmissionDeniedError},
    502: {"model": UpstreamDispatchError},
}


# Dispatching routes are sync: the workflow webhook call blocks, so they run in the threadpool.
@router.post(
    "/upload",
    response_model=JobAccepted,
    status_code=status.HTTP_201_CREATED,
    responses={
        **_CREATE_RESPONSES,
        400: {"model": UploadRejectedError},
        503: {"model": StorageUnavailableError},
    },
)
def upload_audio(
    file: Annotated[UploadFile, File()],
    principal: Annotated[AuthPrincipal, Depends(require_roles(*UPLOAD_ROLES))],
    service: Annotated[AudioAnalysisService, Depends(get_audio_analysis_service)],
) -> JobAccepted:
    return service.upload_and_process(
        organization_id=principal.organization_id,
        filename=file.filename or "audio.mp3",
        content_type=file.content_type,
        data=service.read_upload(file.file, declared_size=file.size),
    )


@router.post(
    "/jobs",
    response_model=JobAccepted,
    status_code=status.HTTP_201_CREATED,
    responses=_CREATE_RESPONSES,
)
def create_job(
    payload: CreateJobRequest,
    principal: Annotated[AuthPrincipal, Depends(require_roles(*UPLOAD_ROLES))],
    service: Annotated[AudioAnalysisService, Depends(get_audio_analysis_service)],
) -> JobAccepted:
    job = service.create_and_dispatch(organization_id=principal.organization_id, file_id=payload.file_id)
    return JobAccepted(
        job_id=job.id,
        file_id=payload.file_id,
        status=job.status,
        message="Job created, processing started",
    )


@router.get("/jobs", response_model=JobList, responses={400: {"model": ErrorResponse}})
async def list_jobs(
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[JobService, Depends(get_job_service)],
    status_filter: Annotated[JobStatus | None, Query(alias="status")] = None,
    limit: Annotated[int, Query()] = 50,
    offset: Annotated[int, Query()] = 0,
) -> JobList:
    return service.list_jobs(
        organization_id=principal.organization_id,
        status=status_filter,
        limit=limit,
        offset=offset,
    )


@router.get("/jobs/stats", response_model=JobStats, responses={404: {"model": TenantNotFoundError}})
async def get_job_stats(
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[JobService, Depends(get_job_service)],
) -> JobStats:
    return service.get_job_stats(organization_id=principal.organization_id)


@router.get(
    "/jobs/{jobId}",
    response_model=Job,
    responses={404: {"model": NoLeakNotFoundError}},
)
async def get_job(
    job_id: Annotated[str, Path(alias="jobId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[JobService, Depends(get_job_service)],
) -> Job:
    return service.get_job(job_id=job_id, organization_id=principal.organization_scope())


@router.get(
    "/jobs/{jobId}/results",
    response_model=AnalysisResult,
    responses={404: {"model": NoLeakNotFoundError}},
)
async def get_job_result(
    job_id: Annotated[str, Path(alias="jobId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[ResultService, Depends(get_result_service)],
) -> AnalysisResult:
    return service.get_result(job_id=job_id, organization_id=principal.organization_scope())


@router.get("/results", response_model=AnalysisResultPage, responses={400: {"model": ErrorResponse}})
async def list_results(
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[ResultService, Depends(get_result_service)],
    page: Annotated[int, Query()] = 1,
    limit: Annotated[int, Query()] = 10,
    sort_order: Annotated[Literal["asc", "desc"], Query()] = "desc",
) -> AnalysisResultPage:
    return service.list_results(
        organization_id=principal.organization_id,
        page=page,
        limit=limit,
        sort_order=sort_order,
    )


@router.get("/results/stats", response_model=AnalysisResultStats)
async def get_result_stats(
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[ResultService, Depends(get_result_service)],
) -> AnalysisResultStats:
    return service.get_stats(organization_id=principal.organization_id)
