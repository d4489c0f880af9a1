"""Error taxonomy shared by executors, orchestrator and trigger surfaces.

Expected domain failures are AuditError subclasses and are converted into
StageOutcome / StageRecord states by the orchestrator. PersistenceError is an
infrastructure failure and always propagates to the caller.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Failure codes surfaced to callers.

    NOT_FOUND: Unknown product or slug.
    PREREQ_FAILED: Stage ordering violated; retry once the prerequisite completes.
    VALIDATION_FAILED: Executor output failed its schema checks; not auto-retried.
    EXECUTOR_FAILURE: External call failed or timed out; safe to retry.
    CLAIM_EMPTY: No queued work. An idle signal, not an error.
    UNAUTHORIZED: Trigger called without the platform header or shared secret.
    """

    NOT_FOUND = "NOT_FOUND"
    PREREQ_FAILED = "PREREQ_FAILED"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    EXECUTOR_FAILURE = "EXECUTOR_FAILURE"
    CLAIM_EMPTY = "CLAIM_EMPTY"
    UNAUTHORIZED = "UNAUTHORIZED"


_HTTP_STATUS: dict[ErrorCode, int] = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.PREREQ_FAILED: 409,
    ErrorCode.VALIDATION_FAILED: 422,
    ErrorCode.EXECUTOR_FAILURE: 502,
    ErrorCode.CLAIM_EMPTY: 204,
    ErrorCode.UNAUTHORIZED: 401,
}

INFRASTRUCTURE_HTTP_STATUS = 500


def http_status_for(code: ErrorCode) -> int:
    """HTTP-equivalent status for an error code."""
    return _HTTP_STATUS.get(code, INFRASTRUCTURE_HTTP_STATUS)


class AuditError(Exception):
    """Expected domain failure carrying an ErrorCode and a short reason."""

    code: ErrorCode = ErrorCode.EXECUTOR_FAILURE

    def __init__(self, reason: str, message: str = "") -> None:
        self.reason = reason
        self.message = message
        super().__init__(f"{reason}: {message}" if message else reason)


class ExecutorFailure(AuditError):
    """External call (inference, fetch) failed or timed out."""

    code = ErrorCode.EXECUTOR_FAILURE


class ValidationFailure(AuditError):
    """Executor produced output that fails the stage schema."""

    code = ErrorCode.VALIDATION_FAILED


class PersistenceError(Exception):
    """The backing store could not be read or written."""


class StaleClaimError(Exception):
    """A worker tried to hand back a run it no longer holds.

    Raised when the run left RUNNING or was re-claimed (its attempt_count
    moved past the caller's claim token) after a lease expiry.
    """

    def __init__(self, run_id: str, claim_token: int, current_token: int, status: str) -> None:
        self.run_id = run_id
        self.claim_token = claim_token
        self.current_token = current_token
        self.status = status
        super().__init__(
            f"run {run_id} claim {claim_token} is stale "
            f"(current claim {current_token}, status {status})"
        )


class NotFoundError(AuditError):
    """Unknown product, slug or run."""

    code = ErrorCode.NOT_FOUND
