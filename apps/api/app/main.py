"""FastAPI application entrypoint."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse

from app.adapters.storage import BlobStore, InMemoryBlobStore, S3BlobStore
from app.core.config import Settings, get_settings
from app.errors import ApiError
from app.repositories.memory import InMemoryStore
from app.routes import audio_analysis_router, internal_router
from app.routes.internal import post_audio_analysis_callback
from app.schemas.error import ErrorResponse

logger = logging.getLogger(__name__)

_OPENAPI_RESPONSE_CODES: dict[str, dict[str, set[str]]] = {
    "/api/v1/audio-analysis/upload": {"post": {"201", "400", "401", "403", "404", "429", "502", "503"}},
    "/api/v1/audio-analysis/jobs": {
        "post": {"201", "401", "403", "404", "429", "502"},
        "get": {"200", "400", "401"},
    },
    "/api/v1/audio-analysis/jobs/stats": {"get": {"200", "401", "404"}},
    "/api/v1/audio-analysis/jobs/{jobId}": {"get": {"200", "401", "404"}},
    "/api/v1/audio-analysis/jobs/{jobId}/results": {"get": {"200", "401", "404"}},
    "/api/v1/audio-analysis/results": {"get": {"200", "400", "401"}},
    "/api/v1/audio-analysis/results/stats": {"get": {"200", "401"}},
    "/api/v1/internal/audio-analysis/callback": {"post": {"200", "400", "401", "404", "409"}},
    "/api/v1/internal/jobs/reap-stale": {"post": {"200", "401"}},
}

# Matched on the endpoint callable: mounted route paths do not carry the router prefix.
_CALLBACK_VALIDATION_ENDPOINTS = frozenset({post_audio_analysis_callback})


def _apply_contract_response_codes(schema: dict) -> None:
    """Limit documented response codes to the ones each operation can return."""
    for path, methods in _OPENAPI_RESPONSE_CODES.items():
        path_item = schema.get("paths", {}).get(path)
        if not path_item:
            continue

        for method, allowed_codes in methods.items():
            operation = path_item.get(method)
            if not operation:
                continue

            responses = operation.setdefault("responses", {})
            for status_code in list(responses.keys()):
                if status_code not in allowed_codes:
                    responses.pop(status_code, None)

            for status_code in sorted(allowed_codes):
                responses.setdefault(status_code, {"description": "See API contract"})


def build_blob_store(settings: Settings) -> BlobStore:
    if settings.storage_backend == "s3":
        return S3BlobStore(
            bucket=settings.storage_bucket,
            endpoint_url=settings.storage_endpoint,
            region=settings.storage_region,
            access_key=settings.storage_access_key,
            secret_key=settings.storage_secret_key,
            public_base_url=settings.storage_public_base_url,
        )
    return InMemoryBlobStore()


def build_store(settings: Settings) -> InMemoryStore:
    store = InMemoryStore()
    for organization_id, max_concurrent_jobs in settings.seed_organizations.items():
        store.create_organization(
            organization_id,
            max_concurrent_jobs=max_concurrent_jobs,
            organization_id=organization_id,
        )
    if settings.seed_organizations:
        logger.info("store.seeded organizations=%s", len(settings.seed_organizations))
    return store


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Audiolens API", version="0.1.0")
    app.state.store = build_store(settings)
    app.state.blob_store = build_blob_store(settings)

    @app.exception_handler(ApiError)
    async def handle_api_error(_, exc: ApiError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.payload.model_dump(mode="json", exclude_none=True),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        # Callback payload problems are the workflow engine's fault, reported as 400 rather than 422.
        if request.scope.get("endpoint") in _CALLBACK_VALIDATION_ENDPOINTS:
            payload = ErrorResponse(code="VALIDATION_ERROR", message="Invalid callback payload")
            return JSONResponse(status_code=400, content=payload.model_dump(exclude_none=True))

        return await request_validation_exception_handler(request, exc)

    api_prefix = "/api/v1"
    app.include_router(audio_analysis_router, prefix=api_prefix)
    app.include_router(internal_router, prefix=api_prefix)

    def custom_openapi() -> dict:
        if app.openapi_schema:
            return app.openapi_schema
        schema = get_openapi(
            title=app.title,
            version=app.version,
            description=app.description,
            routes=app.routes,
        )
        _apply_contract_response_codes(schema)
        app.openapi_schema = schema
        return app.openapi_schema

    app.openapi = custom_openapi

    return app


app = create_app()
