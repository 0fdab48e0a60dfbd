"""Narrowing of loose callback envelopes into completed/failed outcomes."""

from pydantic import TypeAdapter, ValidationError

from app.schemas.internal import CallbackOutcome, WorkflowCallbackRequest

MISSING_ANALYSIS_FIELDS_ERROR = "Missing transcript or sentiment in completed callback"
UNKNOWN_STATUS_ERROR = "unknown status in callback"

_OUTCOME_ADAPTER: TypeAdapter[CallbackOutcome] = TypeAdapter(CallbackOutcome)
_KNOWN_STATUSES = frozenset({"completed", "failed"})


class CallbackOutcomeError(ValueError):
    """A callback envelope that matches neither outcome variant.

    ``job_error`` is the cause persisted on the job; ``code`` and ``message``
    are what the caller receives.
    """

    def __init__(self, *, code: str, message: str, job_error: str) -> None:
        self.code = code
        self.message = message
        self.job_error = job_error
        super().__init__(message)


def parse_callback_outcome(request: WorkflowCallbackRequest) -> CallbackOutcome:
    if request.status not in _KNOWN_STATUSES:
        raise CallbackOutcomeError(
            code="CALLBACK_UNKNOWN_STATUS",
            message="Unknown status in workflow callback",
            job_error=UNKNOWN_STATUS_ERROR,
        )

    try:
        return _OUTCOME_ADAPTER.validate_python(request.model_dump(exclude_none=True))
    except ValidationError as exc:
        raise CallbackOutcomeError(
            code="CALLBACK_VALIDATION_FAILED",
            message="Missing transcript or sentiment for completed job",
            job_error=MISSING_ANALYSIS_FIELDS_ERROR,
        ) from exc
