"""Application configuration."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MAX_CONCURRENT_JOBS = 5
ABSOLUTE_MAX_CONCURRENT_JOBS = 50
DEFAULT_MAX_UPLOAD_BYTES = 20 * 1024 * 1024


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables."""

    auth_provider: Literal["mock", "firebase"] = "firebase"
    firebase_project_id: str | None = None
    firebase_audience: str | None = None

    # Shared secret expected on inbound workflow callbacks; unset disables the check.
    callback_secret: str | None = None

    workflow_webhook_url: str | None = None
    workflow_webhook_secret: str | None = None
    workflow_webhook_timeout_seconds: float = Field(default=10.0, gt=0)

    default_max_concurrent_jobs: int = Field(default=DEFAULT_MAX_CONCURRENT_JOBS, ge=1)
    absolute_max_concurrent_jobs: int = Field(default=ABSOLUTE_MAX_CONCURRENT_JOBS, ge=1)
    stale_job_timeout_seconds: float | None = Field(default=None, gt=0)

    max_upload_bytes: int = Field(default=DEFAULT_MAX_UPLOAD_BYTES, ge=1)
    storage_backend: Literal["memory", "s3"] = "memory"
    storage_bucket: str = "audio-uploads"
    storage_endpoint: str | None = None
    storage_region: str | None = None
    storage_access_key: str | None = None
    storage_secret_key: str | None = None
    storage_public_base_url: str | None = None
    presigned_url_ttl_seconds: int | None = Field(default=None, ge=1)

    # organization_id -> max concurrent jobs (null uses the default limit)
    seed_organizations: dict[str, int | None] = Field(default_factory=dict)

    model_config = SettingsConfigDict(env_prefix="AUDIOLENS_", extra="ignore")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
