"""Canonical snapshot: merged per-product view of every stage's last good output."""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

from audit_system.data_management.schemas.stage_schema import StageId, StageStatus


class SnapshotStageEntry(BaseModel):
    """Last known-good output of one stage."""

    status: StageStatus = StageStatus.DONE
    completed_at: datetime
    data: dict[str, Any] = Field(default_factory=dict)


class CanonicalSnapshot(BaseModel):
    """Derived state, reconstructible by replaying a product's StageRecords.

    stages is keyed by StageId.key ('stage_1' .. 'stage_4').
    """

    product_id: str
    stages: dict[str, SnapshotStageEntry] = Field(default_factory=dict)
    is_verified: bool = False
    quality_score: Optional[float] = None
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def entry(self, stage: StageId) -> Optional[SnapshotStageEntry]:
        return self.stages.get(stage.key)

    def done_count(self) -> int:
        return sum(1 for e in self.stages.values() if e.status == StageStatus.DONE)

    def has_done(self, stage: StageId) -> bool:
        entry = self.entry(stage)
        return entry is not None and entry.status == StageStatus.DONE
