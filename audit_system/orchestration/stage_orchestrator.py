"""Stage orchestrator: the per-product stage state machine.

Every entry point (HTTP trigger, refresh sweep, background worker) runs
stages through run_stage(). The orchestrator owns the transition rules:

- Prerequisites are checked first; an unmet one fails with PREREQ_FAILED
  and nothing is executed or written
- A done record with output is returned as a cache hit unless force_redo
- Otherwise: running -> execute -> validate -> done | error
- A validation failure also blocks the next stage without touching its
  previously computed output
- Success merges the output into the canonical snapshot

Expected domain failures come back as StageOutcome(ok=False). Persistence
failures and unexpected exceptions propagate.

Usage:
    orchestrator = StageOrchestrator(products, stage_records, snapshots, executors)
    outcome = await orchestrator.run_stage("p-1", StageId.DISCREPANCIES)
    if not outcome.ok:
        print(outcome.error, outcome.detail)
"""

from typing import Any, Optional

from audit_system.data_management.product_store import ProductStore
from audit_system.data_management.schemas import (
    STAGE_PREREQUISITES,
    CanonicalSnapshot,
    StageId,
    StageOutcome,
    StageRecord,
    StageStatus,
)
from audit_system.data_management.snapshot_store import SnapshotStore
from audit_system.data_management.stage_store import StageRecordStore
from audit_system.errors import AuditError, ErrorCode, PersistenceError
from audit_system.executors.base_executor import BaseStageExecutor, StageInputs
from audit_system.utils.logging import get_structured_logger


class StageOrchestrator:
    """Runs individual stages for a product under the transition rules."""

    def __init__(
        self,
        products: ProductStore,
        stage_records: StageRecordStore,
        snapshots: SnapshotStore,
        executors: dict[StageId, BaseStageExecutor],
    ) -> None:
        missing = [stage for stage in StageId if stage not in executors]
        if missing:
            raise ValueError(f"No executor registered for stages: {[s.value for s in missing]}")

        self._products = products
        self._stage_records = stage_records
        self._snapshots = snapshots
        self._executors = executors
        self._logger = get_structured_logger("StageOrchestrator")

    async def run_stage(
        self,
        product_id: str,
        stage: StageId,
        force_redo: bool = False,
    ) -> StageOutcome:
        """Run one stage for one product.

        Args:
            product_id: Product to audit.
            stage: Stage to run.
            force_redo: Recompute even if a cached output exists.

        Returns:
            StageOutcome; ok=False carries the ErrorCode and a detail string.

        Raises:
            PersistenceError: A store could not be read or written.
        """
        stage = StageId.parse(stage)
        log = self._logger.bind(product_id=product_id, stage=stage.value)

        product = await self._products.get(product_id)
        if product is None:
            log.warning("stage_product_not_found")
            return StageOutcome.failure(
                product_id, stage, ErrorCode.NOT_FOUND, f"product {product_id} not found"
            )

        records = await self._stage_records.get_all(product_id)
        current = records.get(stage)

        unmet = [
            prereq
            for prereq in STAGE_PREREQUISITES[stage]
            if prereq not in records or not records[prereq].is_done
        ]
        if unmet:
            detail = ", ".join(f"{p.key} not done" for p in unmet)
            log.info("stage_prereq_failed", unmet=[p.value for p in unmet])
            return StageOutcome.failure(
                product_id,
                stage,
                ErrorCode.PREREQ_FAILED,
                detail,
                status=current.status if current else None,
            )

        if not force_redo and current is not None and current.is_cache_hit:
            log.info("stage_cached")
            return StageOutcome.success(product_id, stage, current.output, cached=True)

        executor = self._executors[stage]
        inputs: StageInputs = {
            s: record.output
            for s, record in records.items()
            if s < stage and record.is_cache_hit
        }

        await self._stage_records.mark_running(product_id, stage)
        log.info("stage_started", force_redo=force_redo)

        try:
            raw = await executor.execute(product, inputs)
        except AuditError as e:
            if e.code == ErrorCode.VALIDATION_FAILED:
                return await self._fail_validation(product_id, stage, e.reason, e.message)
            await self._stage_records.mark_error(product_id, stage, e.code, e.reason, e.message)
            log.warning("stage_executor_failed", reason=e.reason, error=e.message)
            return StageOutcome.failure(
                product_id, stage, e.code, str(e), status=StageStatus.ERROR
            )
        except PersistenceError:
            raise
        except Exception as e:
            await self._stage_records.mark_error(
                product_id, stage, ErrorCode.EXECUTOR_FAILURE, "unexpected_error", str(e)
            )
            log.error("stage_unexpected_error", error=str(e), exc_info=True)
            raise

        validation = executor.validate(raw)
        if not validation.valid:
            return await self._fail_validation(
                product_id, stage, validation.reason or "invalid_output"
            )

        output = executor.finalize(raw)
        await self._stage_records.mark_done(product_id, stage, output)
        await self._merge_snapshot(product_id, stage, output)

        log.info("stage_done", items=validation.item_count)
        return StageOutcome.success(product_id, stage, output)

    async def _fail_validation(
        self,
        product_id: str,
        stage: StageId,
        reason: str,
        message: str = "",
    ) -> StageOutcome:
        """Mark the stage error and block the next stage, keeping its output."""
        await self._stage_records.mark_error(
            product_id, stage, ErrorCode.VALIDATION_FAILED, reason, message
        )
        downstream = stage.next
        if downstream is not None:
            await self._stage_records.mark_blocked(
                product_id,
                downstream,
                f"{stage.key}_invalid: {reason}",
            )
            self._logger.info(
                "stage_blocked",
                product_id=product_id,
                stage=downstream.value,
                upstream=stage.value,
                reason=reason,
            )

        self._logger.warning(
            "stage_validation_failed",
            product_id=product_id,
            stage=stage.value,
            reason=reason,
        )
        return StageOutcome.failure(
            product_id,
            stage,
            ErrorCode.VALIDATION_FAILED,
            f"{reason}: {message}" if message else reason,
            status=StageStatus.ERROR,
        )

    async def _merge_snapshot(
        self,
        product_id: str,
        stage: StageId,
        output: dict[str, Any],
    ) -> None:
        if stage == StageId.ASSESSMENT:
            await self._snapshots.merge_stage(
                product_id,
                stage,
                output,
                is_verified=True,
                quality_score=output.get("truth_index"),
            )
            await self._products.set_stale(product_id, False)
        else:
            await self._snapshots.merge_stage(product_id, stage, output)

    async def get_status(self, product_id: str) -> dict[StageId, StageRecord]:
        """All four stage records, with never-run stages reported as pending."""
        records = await self._stage_records.get_all(product_id)
        return {
            stage: records.get(stage) or StageRecord(product_id=product_id, stage=stage)
            for stage in StageId
        }

    async def get_snapshot(self, product_id: str) -> Optional[CanonicalSnapshot]:
        return await self._snapshots.get(product_id)

    async def rebuild_snapshot(self, product_id: str) -> CanonicalSnapshot:
        """Reconstruct the snapshot from the product's stage records."""
        records = await self._stage_records.get_all(product_id)
        return await self._snapshots.rebuild(product_id, records.values())
