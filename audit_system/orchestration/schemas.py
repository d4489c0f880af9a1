"""Result models returned by the worker, refresh sweep and integrity check."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from audit_system.data_management.schemas import AuditRun, StageId, StageOutcome
from audit_system.errors import ErrorCode


class WorkerStepResult(BaseModel):
    """Outcome of one worker activation (at most one stage advanced)."""

    ok: bool
    idle: bool = False
    error: Optional[ErrorCode] = None
    run: Optional[AuditRun] = None
    stage: Optional[StageId] = None
    outcome: Optional[StageOutcome] = None
    claim_lost: bool = False

    @classmethod
    def empty(cls) -> "WorkerStepResult":
        return cls(ok=True, idle=True, error=ErrorCode.CLAIM_EMPTY)


class SweepCandidateResult(BaseModel):
    """Per-candidate result of a refresh sweep."""

    product_id: str
    ok: bool
    status: str = Field(..., description="'refreshed (TI: n)' or 'sN_failed: reason'")
    completed_stages: list[int] = Field(default_factory=list)
    truth_index: Optional[int] = None


class SweepReport(BaseModel):
    processed: int = 0
    results: list[SweepCandidateResult] = Field(default_factory=list)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.ok)


AuditStatus = Literal["verified", "partial", "no_audit"]


class FreshnessReport(BaseModel):
    """Read-only integrity check for one product."""

    slug: str
    product_id: str
    checksum: Optional[str] = None
    last_verified_at: Optional[datetime] = None
    freshness_days: Optional[int] = None
    needs_refresh: bool = True
    status: AuditStatus = "no_audit"
    audit_version: Optional[str] = None
    truth_score: Optional[float] = None

    def to_response(self) -> dict:
        return {
            "ok": True,
            "checksum": self.checksum,
            "lastVerifiedAt": self.last_verified_at.isoformat() if self.last_verified_at else None,
            "freshnessDays": self.freshness_days,
            "needsRefresh": self.needs_refresh,
            "status": self.status,
            "auditVersion": self.audit_version,
            "truthScore": self.truth_score,
        }
