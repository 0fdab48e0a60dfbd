"""Per-tenant admission control for concurrently active jobs."""

from __future__ import annotations

from dataclasses import dataclass
import logging

from app.core.config import ABSOLUTE_MAX_CONCURRENT_JOBS, DEFAULT_MAX_CONCURRENT_JOBS, Settings
from app.errors import ApiError
from app.repositories.memory import InMemoryStore, OrganizationRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AdmissionPolicy:
    default_max_jobs: int = DEFAULT_MAX_CONCURRENT_JOBS
    absolute_max_jobs: int = ABSOLUTE_MAX_CONCURRENT_JOBS

    @classmethod
    def from_settings(cls, settings: Settings) -> AdmissionPolicy:
        return cls(
            default_max_jobs=settings.default_max_concurrent_jobs,
            absolute_max_jobs=settings.absolute_max_concurrent_jobs,
        )


@dataclass(frozen=True, slots=True)
class AdmissionDecision:
    organization_id: str
    allowed: bool
    current_count: int
    max_jobs: int


class TenantLimitGuard:
    """Read-only check of a tenant's active job count against its limit.

    The check itself takes no locks; callers that create a job on ``Allow``
    must hold ``InMemoryStore.tenant_admission`` across check and insert.
    """

    def __init__(self, store: InMemoryStore, policy: AdmissionPolicy) -> None:
        self._store = store
        self._policy = policy

    def resolve_limit(self, organization: OrganizationRecord) -> int:
        configured = organization.max_concurrent_jobs
        # Zero or negative limits are treated as unset.
        limit = configured if configured and configured > 0 else self._policy.default_max_jobs
        return min(limit, self._policy.absolute_max_jobs)

    def usage(self, organization_id: str) -> AdmissionDecision:
        """Current active count against the limit, without recording an admission check."""
        organization = self._store.get_organization(organization_id)
        if organization is None:
            logger.warning("admission.rejected organization_id=%s code=TENANT_NOT_FOUND", organization_id)
            raise ApiError(
                status_code=404,
                code="TENANT_NOT_FOUND",
                message="Organization not found for limit validation",
                details={"organization_id": organization_id},
            )

        max_jobs = self.resolve_limit(organization)
        current_count = self._store.count_active_jobs(organization_id)
        return AdmissionDecision(
            organization_id=organization_id,
            allowed=current_count < max_jobs,
            current_count=current_count,
            max_jobs=max_jobs,
        )

    def admit(self, organization_id: str) -> AdmissionDecision:
        decision = self.usage(organization_id)
        logger.info(
            "admission.checked organization_id=%s active=%s max=%s allowed=%s",
            organization_id,
            decision.current_count,
            decision.max_jobs,
            decision.allowed,
        )
        return decision

    @staticmethod
    def ensure_admitted(decision: AdmissionDecision) -> None:
        if decision.allowed:
            return
        logger.warning(
            "admission.denied organization_id=%s active=%s max=%s code=CONCURRENT_JOB_LIMIT_EXCEEDED",
            decision.organization_id,
            decision.current_count,
            decision.max_jobs,
        )
        raise ApiError(
            status_code=429,
            code="CONCURRENT_JOB_LIMIT_EXCEEDED",
            message=(
                f"Organization has reached its maximum concurrent job limit of {decision.max_jobs}. "
                "Please wait for existing jobs to complete."
            ),
            details={
                "organization_id": decision.organization_id,
                "current_count": decision.current_count,
                "max_limit": decision.max_jobs,
            },
        )
