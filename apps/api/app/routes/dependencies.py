"""Dependency wiring for routes."""

from __future__ import annotations

from collections.abc import Callable
import logging
from secrets import compare_digest
from typing import Annotated
from uuid import uuid4

from fastapi import Depends, Request, Security
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer
import httpx

from app.adapters.auth import AuthVerificationError, TokenVerifier, build_token_verifier
from app.adapters.storage import BlobStore
from app.core.config import Settings, get_settings
from app.core.logging_safety import safe_log_identifier
from app.errors import ApiError
from app.repositories.memory import InMemoryStore
from app.schemas.auth import AuthPrincipal, Role
from app.services.admission import AdmissionPolicy, TenantLimitGuard
from app.services.audio_analysis import AudioAnalysisService
from app.services.dispatch import WEBHOOK_SECRET_HEADER, WebhookDispatchConfig, WorkflowDispatcher
from app.services.internal_callbacks import CallbackReconciler
from app.services.jobs import JobService
from app.services.reaper import ReaperPolicy, StaleJobReaper
from app.services.results import ResultService

bearer_scheme = HTTPBearer(auto_error=False, scheme_name="bearerAuth")
callback_secret_scheme = APIKeyHeader(
    name=WEBHOOK_SECRET_HEADER,
    auto_error=False,
    scheme_name="workflowWebhookSecret",
)
logger = logging.getLogger(__name__)

UPLOAD_ROLES: tuple[Role, ...] = ("OWNER", "ADMIN", "AGENT")


def _auth_error(message: str) -> ApiError:
    return ApiError(status_code=401, code="UNAUTHORIZED", message=message)


def _request_correlation_id(request: Request) -> str:
    existing = getattr(request.state, "correlation_id", None)
    if isinstance(existing, str) and existing:
        return existing

    correlation_id = request.headers.get("X-Correlation-Id")
    if correlation_id:
        request.state.correlation_id = correlation_id
        return correlation_id

    generated = f"req-{uuid4()}"
    request.state.correlation_id = generated
    return generated


def get_token_verifier(settings: Annotated[Settings, Depends(get_settings)]) -> TokenVerifier:
    return build_token_verifier(settings)


async def get_authenticated_principal(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    verifier: Annotated[TokenVerifier, Depends(get_token_verifier)],
) -> AuthPrincipal:
    """Validate bearer token and attach normalized principal to request context."""
    correlation_id = _request_correlation_id(request)
    safe_correlation_id = safe_log_identifier(correlation_id, prefix="cid")
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        logger.warning(
            "auth.rejected correlation_id=%s method=%s path=%s reason=invalid_or_missing_bearer",
            safe_correlation_id,
            request.method,
            request.url.path,
        )
        raise _auth_error("Invalid or missing bearer token")

    try:
        principal = verifier.verify_token(credentials.credentials)
    except AuthVerificationError as exc:
        logger.warning(
            "auth.rejected correlation_id=%s method=%s path=%s reason=token_verification_failed",
            safe_correlation_id,
            request.method,
            request.url.path,
        )
        raise _auth_error(str(exc) or "Invalid bearer token") from exc

    logger.info(
        "auth.accepted correlation_id=%s method=%s path=%s principal_id=%s organization_id=%s role=%s",
        safe_correlation_id,
        request.method,
        request.url.path,
        safe_log_identifier(principal.user_id, prefix="pid"),
        principal.organization_id,
        principal.role,
    )
    request.state.auth_principal = principal
    return principal


def require_roles(*roles: Role) -> Callable[..., AuthPrincipal]:
    """Build a dependency that admits only principals holding one of ``roles``."""

    async def _require(
        principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    ) -> AuthPrincipal:
        if principal.role not in roles:
            logger.warning(
                "auth.forbidden principal_id=%s role=%s",
                safe_log_identifier(principal.user_id, prefix="pid"),
                principal.role,
            )
            raise ApiError(status_code=403, code="FORBIDDEN", message="Insufficient role for this operation")
        return principal

    return _require


async def require_callback_secret(
    request: Request,
    callback_secret: Annotated[str | None, Security(callback_secret_scheme)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> None:
    """Validate the workflow engine secret on internal endpoints when one is configured."""
    if not settings.callback_secret:
        return

    if callback_secret is None or not compare_digest(callback_secret, settings.callback_secret):
        logger.warning(
            "callback.auth_rejected correlation_id=%s method=%s path=%s reason=invalid_callback_secret",
            safe_log_identifier(_request_correlation_id(request), prefix="cid"),
            request.method,
            request.url.path,
        )
        raise _auth_error("Invalid callback authentication")


def get_store(request: Request) -> InMemoryStore:
    return request.app.state.store


def get_blob_store(request: Request) -> BlobStore:
    return request.app.state.blob_store


def get_workflow_http_client() -> httpx.Client | None:
    """Shared outbound client; ``None`` opens a short-lived client per dispatch."""
    return None


def get_job_service(
    store: Annotated[InMemoryStore, Depends(get_store)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> JobService:
    return JobService(store, TenantLimitGuard(store, AdmissionPolicy.from_settings(settings)))


def get_result_service(store: Annotated[InMemoryStore, Depends(get_store)]) -> ResultService:
    return ResultService(store)


def get_workflow_dispatcher(
    job_service: Annotated[JobService, Depends(get_job_service)],
    settings: Annotated[Settings, Depends(get_settings)],
    client: Annotated[httpx.Client | None, Depends(get_workflow_http_client)],
) -> WorkflowDispatcher:
    return WorkflowDispatcher(WebhookDispatchConfig.from_settings(settings), job_service, client)


def get_audio_analysis_service(
    store: Annotated[InMemoryStore, Depends(get_store)],
    blob_store: Annotated[BlobStore, Depends(get_blob_store)],
    job_service: Annotated[JobService, Depends(get_job_service)],
    dispatcher: Annotated[WorkflowDispatcher, Depends(get_workflow_dispatcher)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> AudioAnalysisService:
    return AudioAnalysisService(
        store=store,
        blob_store=blob_store,
        job_service=job_service,
        dispatcher=dispatcher,
        max_upload_bytes=settings.max_upload_bytes,
        presigned_url_ttl_seconds=settings.presigned_url_ttl_seconds,
    )


def get_callback_reconciler(
    store: Annotated[InMemoryStore, Depends(get_store)],
    job_service: Annotated[JobService, Depends(get_job_service)],
) -> CallbackReconciler:
    return CallbackReconciler(store, job_service)


def get_stale_job_reaper(
    store: Annotated[InMemoryStore, Depends(get_store)],
    job_service: Annotated[JobService, Depends(get_job_service)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> StaleJobReaper:
    return StaleJobReaper(store, job_service, ReaperPolicy.from_settings(settings))
