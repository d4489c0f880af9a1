"""Canonical snapshot storage with an atomic per-stage merge.

The snapshot is derived state. merge_stage is the store-side conditional
merge: the re-read of the persisted document, the merge of one stage entry
and the write-back happen under the instance lock plus the file lock, so
concurrent writers for the same product, in this process or another,
cannot drop each other's stage entries.

Usage:
    from audit_system.data_management.snapshot_store import SnapshotStore

    store = SnapshotStore()
    await store.merge_stage("p-1", StageId.DISCREPANCIES, output)
"""

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Optional

import structlog

from audit_system.data_management.persistence import JsonPersistence
from audit_system.data_management.schemas import (
    CanonicalSnapshot,
    SnapshotStageEntry,
    StageId,
    StageRecord,
    StageStatus,
)


class SnapshotStore:
    """Storage for one CanonicalSnapshot per product."""

    def __init__(self, persistence_path: Optional[str | Path] = None) -> None:
        self._snapshots: dict[str, CanonicalSnapshot] = {}
        self._lock = asyncio.Lock()
        self._persistence = JsonPersistence(persistence_path)
        self._logger = structlog.get_logger().bind(component="SnapshotStore")
        self._load()

    async def get(self, product_id: str) -> Optional[CanonicalSnapshot]:
        async with self._lock:
            self._load()
            snapshot = self._snapshots.get(product_id)
            return snapshot.model_copy(deep=True) if snapshot else None

    async def upsert(self, snapshot: CanonicalSnapshot) -> None:
        async with self._lock:
            with self._persistence.locked():
                self._load()
                self._snapshots[snapshot.product_id] = snapshot.model_copy(deep=True)
                self._save()

    async def merge_stage(
        self,
        product_id: str,
        stage: StageId,
        data: dict[str, Any],
        completed_at: Optional[datetime] = None,
        *,
        is_verified: Optional[bool] = None,
        quality_score: Optional[float] = None,
    ) -> CanonicalSnapshot:
        """Write one stage entry, preserving every other stage's entry.

        Args:
            product_id: Product whose snapshot is merged.
            stage: Stage key being written.
            data: Stage output.
            completed_at: Completion time (defaults to now).
            is_verified: Optional verification flag update.
            quality_score: Optional quality score update.

        Returns:
            The merged snapshot.
        """
        now = datetime.now(timezone.utc)
        async with self._lock:
            with self._persistence.locked():
                self._load()
                snapshot = self._snapshots.get(product_id) or CanonicalSnapshot(
                    product_id=product_id
                )
                stages = dict(snapshot.stages)
                stages[stage.key] = SnapshotStageEntry(
                    status=StageStatus.DONE,
                    completed_at=completed_at or now,
                    data=data,
                )
                merged = snapshot.model_copy(
                    update={
                        "stages": stages,
                        "last_updated": now,
                        "is_verified": snapshot.is_verified if is_verified is None else is_verified,
                        "quality_score": snapshot.quality_score if quality_score is None else quality_score,
                    },
                    deep=True,
                )
                self._snapshots[product_id] = merged
                self._save()

            self._logger.debug(
                "snapshot_merged",
                product_id=product_id,
                stage=stage.key,
                stages_present=sorted(stages),
            )
            return merged.model_copy(deep=True)

    async def list_stale(
        self,
        older_than: datetime,
        limit: Optional[int] = None,
    ) -> list[str]:
        """Product IDs whose snapshot was last updated before older_than, oldest first."""
        async with self._lock:
            self._load()
            stale = sorted(
                (s for s in self._snapshots.values() if s.last_updated < older_than),
                key=lambda s: s.last_updated,
            )
            ids = [s.product_id for s in stale]
            return ids[:limit] if limit is not None else ids

    async def rebuild(
        self,
        product_id: str,
        records: Iterable[StageRecord],
    ) -> CanonicalSnapshot:
        """Reconstruct a snapshot by replaying a product's stage records.

        Only done records with output contribute entries. The verification
        flag and quality score come from a done assessment stage.
        """
        stages: dict[str, SnapshotStageEntry] = {}
        last_updated: Optional[datetime] = None
        is_verified = False
        quality_score: Optional[float] = None

        for record in sorted(records, key=lambda r: r.stage):
            if not record.is_cache_hit:
                continue
            stages[record.stage.key] = SnapshotStageEntry(
                completed_at=record.updated_at,
                data=record.output,
            )
            if last_updated is None or record.updated_at > last_updated:
                last_updated = record.updated_at
            if record.stage == StageId.ASSESSMENT:
                is_verified = True
                quality_score = record.output.get("truth_index")

        snapshot = CanonicalSnapshot(
            product_id=product_id,
            stages=stages,
            is_verified=is_verified,
            quality_score=quality_score,
            last_updated=last_updated or datetime.now(timezone.utc),
        )
        await self.upsert(snapshot)
        self._logger.info("snapshot_rebuilt", product_id=product_id, stages=sorted(stages))
        return snapshot

    def _load(self) -> None:
        if not self._persistence.enabled:
            return
        data = self._persistence.load() or {}
        self._snapshots = {
            product_id: CanonicalSnapshot.model_validate(raw) for product_id, raw in data.items()
        }

    def _save(self) -> None:
        if self._persistence.enabled:
            self._persistence.save(
                {pid: s.model_dump(mode="json") for pid, s in self._snapshots.items()}
            )
