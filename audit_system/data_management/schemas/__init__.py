"""Schema package for products, stage state, snapshots, runs and evidence.

Primary exports:
- Product: audited subject (read-only apart from the staleness flag)
- StageRecord / StageOutcome: per-(product, stage) state and orchestrator results
- CanonicalSnapshot: merged per-product view of stage outputs
- AuditRun: queued multi-stage background work
- ClaimFragment / CorroboratedClaim: stage 2 evidence

Usage:
    from audit_system.data_management.schemas import StageId, StageRecord, StageStatus
    record = StageRecord(product_id="p-1", stage=StageId.EVIDENCE)
"""

from audit_system.data_management.schemas.product_schema import Product
from audit_system.data_management.schemas.stage_schema import (
    STAGE_PREREQUISITES,
    StageError,
    StageId,
    StageOutcome,
    StageRecord,
    StageStatus,
)
from audit_system.data_management.schemas.snapshot_schema import (
    CanonicalSnapshot,
    SnapshotStageEntry,
)
from audit_system.data_management.schemas.run_schema import (
    ACTIVE_RUN_STATUSES,
    AuditRun,
    RunStatus,
)
from audit_system.data_management.schemas.evidence_schema import (
    ClaimFragment,
    CorroboratedClaim,
    CorroborationResult,
    SourceRef,
)
from audit_system.data_management.schemas.stage_outputs import (
    AssessmentOutput,
    ClaimProfileOutput,
    DiscrepancyEntry,
    DiscrepancyOutput,
    EvidenceOutput,
    MetricBar,
    Severity,
    SpecRow,
)

__all__ = [
    "Product",
    "STAGE_PREREQUISITES",
    "StageError",
    "StageId",
    "StageOutcome",
    "StageRecord",
    "StageStatus",
    "CanonicalSnapshot",
    "SnapshotStageEntry",
    "ACTIVE_RUN_STATUSES",
    "AuditRun",
    "RunStatus",
    "ClaimFragment",
    "CorroboratedClaim",
    "CorroborationResult",
    "SourceRef",
    "AssessmentOutput",
    "ClaimProfileOutput",
    "DiscrepancyEntry",
    "DiscrepancyOutput",
    "EvidenceOutput",
    "MetricBar",
    "Severity",
    "SpecRow",
]
