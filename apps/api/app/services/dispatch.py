"""Outbound trigger of the external workflow engine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
import logging

import httpx

from app.core.config import Settings
from app.core.logging_safety import redact_url
from app.errors import ApiError
from app.repositories.memory import JobRecord
from app.schemas.internal import WorkflowTriggerPayload
from app.services.jobs import JobService

logger = logging.getLogger(__name__)

WEBHOOK_SECRET_HEADER = "X-Workflow-Webhook-Secret"


@dataclass(frozen=True, slots=True)
class WebhookDispatchConfig:
    url: str | None
    secret: str | None = None
    timeout_seconds: float = 10.0

    @classmethod
    def from_settings(cls, settings: Settings) -> WebhookDispatchConfig:
        return cls(
            url=settings.workflow_webhook_url,
            secret=settings.workflow_webhook_secret,
            timeout_seconds=settings.workflow_webhook_timeout_seconds,
        )


class WorkflowDispatchError(Exception):
    """The workflow engine did not acknowledge the trigger."""

    def __init__(self, cause: str) -> None:
        self.cause = cause
        super().__init__(cause)


class WorkflowDispatcher:
    """Fires the processing trigger and records the outcome on the job.

    A single attempt is made per call; retrying is left to the caller.
    """

    def __init__(
        self,
        config: WebhookDispatchConfig,
        job_service: JobService,
        client: httpx.Client | None = None,
    ) -> None:
        self._config = config
        self._job_service = job_service
        self._client = client

    @staticmethod
    def build_payload(job_id: str, file_url: str) -> WorkflowTriggerPayload:
        return WorkflowTriggerPayload(job_id=job_id, file_url=file_url, timestamp=datetime.now(UTC))

    def send(self, payload: WorkflowTriggerPayload) -> None:
        if not self._config.url:
            logger.warning("dispatch.skipped job_id=%s reason=webhook_url_not_configured", payload.job_id)
            return

        headers = {"Content-Type": "application/json"}
        if self._config.secret:
            headers[WEBHOOK_SECRET_HEADER] = self._config.secret
        body = payload.model_dump(mode="json", by_alias=True)

        try:
            if self._client is not None:
                response = self._client.post(
                    self._config.url,
                    json=body,
                    headers=headers,
                    timeout=self._config.timeout_seconds,
                )
            else:
                with httpx.Client(timeout=self._config.timeout_seconds) as client:
                    response = client.post(self._config.url, json=body, headers=headers)
        except httpx.TimeoutException as exc:
            raise WorkflowDispatchError(f"timeout after {self._config.timeout_seconds}s") from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise WorkflowDispatchError(f"{type(exc).__name__}: {exc}") from exc

        if not 200 <= response.status_code < 300:
            raise WorkflowDispatchError(f"workflow webhook returned status {response.status_code}")

    def dispatch(self, *, job_id: str, file_url: str) -> JobRecord:
        """Trigger processing; pending jobs move to processing on ack, to failed otherwise."""
        payload = self.build_payload(job_id, file_url)
        try:
            self.send(payload)
        except WorkflowDispatchError as exc:
            logger.error(
                "dispatch.failed job_id=%s url=%s cause=%s",
                job_id,
                redact_url(self._config.url),
                exc.cause,
            )
            self._job_service.mark_failed(job_id, f"dispatch failed: {exc.cause}")
            raise ApiError(
                status_code=502,
                code="WORKFLOW_DISPATCH_FAILED",
                message="Failed to trigger processing workflow",
                details={"job_id": job_id},
            ) from exc

        outcome = self._job_service.mark_processing(job_id)
        logger.info(
            "dispatch.acknowledged job_id=%s file_url=%s status=%s",
            job_id,
            redact_url(file_url),
            outcome.job.status.value,
        )
        return outcome.job
