"""StageRecord storage: one record per (product_id, stage).

Follows the same patterns as the other stores:
- Product-scoped organization (product_id as primary key)
- Every transition is a single read-modify-write under the instance lock
  and the cross-process file lock, against a fresh read of the document
- Records are returned as deep copies; callers never mutate store state
- Optional JSON persistence

Transition rules enforced here:
- mark_running / mark_error / mark_blocked never touch output, so a
  previously computed output stays visible until a new one replaces it
- mark_done is the only transition that writes output

Usage:
    from audit_system.data_management.stage_store import StageRecordStore

    store = StageRecordStore()
    await store.mark_running("p-1", StageId.EVIDENCE)
    await store.mark_done("p-1", StageId.EVIDENCE, output)
"""

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import structlog

from audit_system.data_management.persistence import JsonPersistence
from audit_system.data_management.schemas import (
    StageError,
    StageId,
    StageRecord,
    StageStatus,
)
from audit_system.errors import ErrorCode


class StageRecordStore:
    """Storage for stage records with product-scoped access.

    Data structure:
    {
        product_id: {
            StageId: StageRecord,
            ...
        },
        ...
    }
    """

    def __init__(self, persistence_path: Optional[str | Path] = None) -> None:
        """Initialize StageRecordStore.

        Args:
            persistence_path: Optional path to JSON file for persistence.
                            If None, storage is memory-only.
        """
        self._records: dict[str, dict[StageId, StageRecord]] = {}
        self._lock = asyncio.Lock()
        self._persistence = JsonPersistence(persistence_path)
        self._logger = structlog.get_logger().bind(component="StageRecordStore")
        self._load()

    async def get(self, product_id: str, stage: StageId) -> Optional[StageRecord]:
        async with self._lock:
            self._load()
            record = self._records.get(product_id, {}).get(stage)
            return record.model_copy(deep=True) if record else None

    async def get_all(self, product_id: str) -> dict[StageId, StageRecord]:
        """All existing records for a product, keyed by stage."""
        async with self._lock:
            self._load()
            return {
                stage: record.model_copy(deep=True)
                for stage, record in sorted(self._records.get(product_id, {}).items())
            }

    async def put(self, record: StageRecord) -> None:
        """Write a record verbatim (imports and replays)."""
        async with self._lock:
            with self._persistence.locked():
                self._load()
                self._records.setdefault(record.product_id, {})[record.stage] = (
                    record.model_copy(deep=True)
                )
                self._save()

    async def mark_running(self, product_id: str, stage: StageId) -> StageRecord:
        return await self._transition(product_id, stage, StageStatus.RUNNING)

    async def mark_done(
        self,
        product_id: str,
        stage: StageId,
        output: dict[str, Any],
    ) -> StageRecord:
        return await self._transition(product_id, stage, StageStatus.DONE, output=output)

    async def mark_error(
        self,
        product_id: str,
        stage: StageId,
        code: ErrorCode,
        reason: str,
        message: str = "",
    ) -> StageRecord:
        return await self._transition(
            product_id,
            stage,
            StageStatus.ERROR,
            error=StageError(code=code, reason=reason, message=message),
        )

    async def mark_blocked(
        self,
        product_id: str,
        stage: StageId,
        reason: str,
        message: str = "",
    ) -> StageRecord:
        """Block a stage after an upstream failure, keeping any prior output.

        Creates the record if the stage was never run.
        """
        return await self._transition(
            product_id,
            stage,
            StageStatus.BLOCKED,
            error=StageError(
                code=ErrorCode.VALIDATION_FAILED,
                reason=reason,
                message=message,
            ),
        )

    async def _transition(
        self,
        product_id: str,
        stage: StageId,
        status: StageStatus,
        output: Optional[dict[str, Any]] = None,
        error: Optional[StageError] = None,
    ) -> StageRecord:
        async with self._lock:
            with self._persistence.locked():
                self._load()
                bucket = self._records.setdefault(product_id, {})
                previous = bucket.get(stage)

                record = StageRecord(
                    product_id=product_id,
                    stage=stage,
                    status=status,
                    output=output if status == StageStatus.DONE else (
                        previous.output if previous else None
                    ),
                    error=error,
                    updated_at=datetime.now(timezone.utc),
                )
                bucket[stage] = record
                self._save()

            self._logger.debug(
                "stage_record_transition",
                product_id=product_id,
                stage=stage.value,
                old_status=previous.status.value if previous else None,
                new_status=status.value,
            )
            return record.model_copy(deep=True)

    def _load(self) -> None:
        if not self._persistence.enabled:
            return
        data = self._persistence.load() or {}
        self._records = {
            product_id: {
                StageId(int(stage)): StageRecord.model_validate(raw)
                for stage, raw in stages.items()
            }
            for product_id, stages in data.items()
        }

    def _save(self) -> None:
        if not self._persistence.enabled:
            return
        self._persistence.save(
            {
                product_id: {
                    str(stage.value): record.model_dump(mode="json")
                    for stage, record in stages.items()
                }
                for product_id, stages in self._records.items()
            }
        )
