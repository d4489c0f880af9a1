"""Data management package for the audit system.

Provides storage adapters and schemas for:
- Products - audited subjects plus the staleness flag
- StageRecords - per-(product, stage) status and output
- CanonicalSnapshots - merged per-product view, derived from stage records
- AuditRuns - queued background work with an atomic claim

Storage adapters:
- ProductStore: Product lookup by id or slug
- StageRecordStore: Stage state transitions
- SnapshotStore: Atomic per-stage snapshot merge
- AuditRunStore: Run queue with claim_next
"""

from audit_system.data_management.product_store import ProductStore
from audit_system.data_management.stage_store import StageRecordStore
from audit_system.data_management.snapshot_store import SnapshotStore
from audit_system.data_management.run_store import AuditRunStore

__all__ = [
    "ProductStore",
    "StageRecordStore",
    "SnapshotStore",
    "AuditRunStore",
]
