"""AuditRun schema: a queued unit of multi-stage background work.

The cursor names the next stage to execute. A run in RUNNING status is held
by exactly one worker. attempt_count doubles as the claim token: each claim
increments it, so a worker whose lease expired and whose run was claimed
again holds an outdated token and cannot hand the run back.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from audit_system.data_management.schemas.stage_schema import StageId, StageStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_run_id() -> str:
    return f"run_{_utcnow().strftime('%Y%m%d_%H%M%S')}_{uuid4().hex[:8]}"


class RunStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"


ACTIVE_RUN_STATUSES = (RunStatus.QUEUED, RunStatus.RUNNING)


class AuditRun(BaseModel):
    """One end-to-end pass of a product through the stage pipeline."""

    run_id: str = Field(default_factory=_new_run_id)
    product_id: str
    status: RunStatus = RunStatus.QUEUED
    cursor: Optional[StageId] = StageId.CLAIM_PROFILE
    stage_states: dict[str, StageStatus] = Field(default_factory=dict)
    force_redo: bool = False
    error: Optional[str] = None
    attempt_count: int = 0
    claimed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None

    @property
    def progress(self) -> int:
        """Percentage of stages done."""
        done = sum(1 for s in self.stage_states.values() if s == StageStatus.DONE)
        return round(done / len(StageId) * 100)
