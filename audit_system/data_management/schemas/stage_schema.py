"""Stage state machine schemas.

A StageRecord is the unit of pipeline state, keyed by (product_id, stage).
StageOutcome is what every caller of the orchestrator receives back.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

from audit_system.errors import ErrorCode, http_status_for


class StageId(int, Enum):
    """The four ordered pipeline stages."""

    CLAIM_PROFILE = 1
    EVIDENCE = 2
    DISCREPANCIES = 3
    ASSESSMENT = 4

    @property
    def key(self) -> str:
        """Snapshot key, e.g. 'stage_3'."""
        return f"stage_{self.value}"

    @property
    def next(self) -> Optional["StageId"]:
        if self.value >= StageId.ASSESSMENT.value:
            return None
        return StageId(self.value + 1)

    @classmethod
    def parse(cls, value: Any) -> "StageId":
        """Accept 3, '3', 'stage_3' or 'stage3'."""
        if isinstance(value, StageId):
            return value
        text = str(value).strip().lower().replace("stage_", "").replace("stage", "")
        return cls(int(text))


STAGE_PREREQUISITES: dict[StageId, tuple[StageId, ...]] = {
    StageId.CLAIM_PROFILE: (),
    StageId.EVIDENCE: (),
    StageId.DISCREPANCIES: (StageId.CLAIM_PROFILE, StageId.EVIDENCE),
    StageId.ASSESSMENT: (StageId.DISCREPANCIES,),
}


class StageStatus(str, Enum):
    """StageRecord status.

    PENDING: Never attempted.
    RUNNING: Execution in progress.
    DONE: Output populated and valid.
    ERROR: Last attempt failed; error populated.
    BLOCKED: An upstream stage produced invalid output; any prior output is
        kept but known to be stale.
    """

    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"
    BLOCKED = "blocked"


class StageError(BaseModel):
    """Reason code plus message attached to error/blocked records."""

    code: ErrorCode
    reason: str
    message: str = ""


class StageRecord(BaseModel):
    """Persisted status/output for one (product, stage) pair."""

    product_id: str
    stage: StageId
    status: StageStatus = StageStatus.PENDING
    output: Optional[dict[str, Any]] = None
    error: Optional[StageError] = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def _error_iff_failed(self) -> "StageRecord":
        failed = self.status in (StageStatus.ERROR, StageStatus.BLOCKED)
        if failed and self.error is None:
            raise ValueError(f"status {self.status.value} requires an error")
        if not failed and self.error is not None:
            raise ValueError(f"status {self.status.value} must not carry an error")
        return self

    @property
    def is_done(self) -> bool:
        return self.status == StageStatus.DONE

    @property
    def is_cache_hit(self) -> bool:
        """Done with a non-empty output: honored without recomputation."""
        return self.status == StageStatus.DONE and bool(self.output)


class StageOutcome(BaseModel):
    """Result of StageOrchestrator.run_stage."""

    ok: bool
    product_id: str
    stage: StageId
    status: Optional[StageStatus] = None
    output: Optional[dict[str, Any]] = None
    cached: bool = False
    error: Optional[ErrorCode] = None
    detail: Optional[str] = None

    @classmethod
    def success(
        cls,
        product_id: str,
        stage: StageId,
        output: dict[str, Any],
        cached: bool = False,
    ) -> "StageOutcome":
        return cls(
            ok=True,
            product_id=product_id,
            stage=stage,
            status=StageStatus.DONE,
            output=output,
            cached=cached,
        )

    @classmethod
    def failure(
        cls,
        product_id: str,
        stage: StageId,
        error: ErrorCode,
        detail: str,
        status: Optional[StageStatus] = None,
    ) -> "StageOutcome":
        return cls(
            ok=False,
            product_id=product_id,
            stage=stage,
            status=status,
            error=error,
            detail=detail,
        )

    @property
    def http_status(self) -> int:
        return 200 if self.ok else http_status_for(self.error)

    def to_response(self) -> dict[str, Any]:
        """Trigger-surface body: {ok, status, output} or {ok, error, detail}."""
        if self.ok:
            body: dict[str, Any] = {
                "ok": True,
                "status": self.status.value,
                "output": self.output,
            }
            if self.cached:
                body["cached"] = True
            return body
        return {
            "ok": False,
            "status": self.status.value if self.status else None,
            "error": self.error.value,
            "detail": self.detail,
        }
