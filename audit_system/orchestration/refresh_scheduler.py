"""Refresh scheduler: periodic sweep re-running stale audits.

Candidates are the union of products whose snapshot is older than the
staleness threshold and products flagged stale, deduplicated and capped at
the batch size. Each candidate is driven through stages 2 -> 3 -> 4 with
force_redo, strictly one candidate at a time. Stage 1 is skipped: it is a
pure derivation of unchanged product data.

A failing stage ends that candidate's chain only; the sweep always moves on
to the next candidate.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from audit_system.data_management.product_store import ProductStore
from audit_system.data_management.schemas import StageId
from audit_system.data_management.snapshot_store import SnapshotStore
from audit_system.errors import PersistenceError
from audit_system.orchestration.schemas import SweepCandidateResult, SweepReport
from audit_system.orchestration.stage_orchestrator import StageOrchestrator
from audit_system.utils.logging import get_structured_logger

REFRESH_STAGES = (StageId.EVIDENCE, StageId.DISCREPANCIES, StageId.ASSESSMENT)


class RefreshScheduler:
    """Batch refresh of stale products."""

    def __init__(
        self,
        orchestrator: StageOrchestrator,
        products: ProductStore,
        snapshots: SnapshotStore,
        batch_size: int = 10,
        stale_days: int = 30,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._products = products
        self._snapshots = snapshots
        self._batch_size = batch_size
        self._stale_days = stale_days
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._logger = get_structured_logger("RefreshScheduler")

    async def select_candidates(
        self,
        batch_size: int,
        stale_days: int,
    ) -> list[str]:
        """Stale snapshots first (oldest first), then flagged products."""
        cutoff = self._clock() - timedelta(days=stale_days)
        stale_snapshots = await self._snapshots.list_stale(cutoff, limit=batch_size)
        flagged = await self._products.list_stale(limit=batch_size)

        candidates = list(dict.fromkeys(stale_snapshots + flagged))
        return candidates[:batch_size]

    async def sweep(
        self,
        batch_size: Optional[int] = None,
        stale_days: Optional[int] = None,
    ) -> SweepReport:
        """Run one refresh sweep.

        Args:
            batch_size: Candidate cap (defaults to configured batch size).
            stale_days: Snapshot age threshold in days.

        Returns:
            SweepReport with one result per processed candidate.
        """
        batch_size = self._batch_size if batch_size is None else batch_size
        stale_days = self._stale_days if stale_days is None else stale_days

        candidates = await self.select_candidates(batch_size, stale_days)
        self._logger.info(
            "sweep_started",
            candidates=len(candidates),
            batch_size=batch_size,
            stale_days=stale_days,
        )

        results = []
        for product_id in candidates:
            results.append(await self._refresh(product_id))

        report = SweepReport(processed=len(results), results=results)
        self._logger.info(
            "sweep_completed",
            processed=report.processed,
            failed=report.failed,
        )
        return report

    async def _refresh(self, product_id: str) -> SweepCandidateResult:
        completed: list[int] = []
        truth_index = None

        for stage in REFRESH_STAGES:
            try:
                outcome = await self._orchestrator.run_stage(product_id, stage, force_redo=True)
            except PersistenceError:
                raise
            except Exception as e:
                self._logger.error(
                    "sweep_candidate_failed",
                    product_id=product_id,
                    stage=stage.value,
                    error=str(e),
                    completed_stages=completed,
                    exc_info=True,
                )
                return SweepCandidateResult(
                    product_id=product_id,
                    ok=False,
                    status=f"s{stage.value}_failed: {e}",
                    completed_stages=completed,
                )

            if not outcome.ok:
                self._logger.warning(
                    "sweep_candidate_failed",
                    product_id=product_id,
                    stage=stage.value,
                    error=outcome.error.value,
                    detail=outcome.detail,
                    completed_stages=completed,
                )
                return SweepCandidateResult(
                    product_id=product_id,
                    ok=False,
                    status=f"s{stage.value}_failed: {outcome.detail or outcome.error.value}",
                    completed_stages=completed,
                )

            completed.append(stage.value)
            if stage == StageId.ASSESSMENT:
                truth_index = (outcome.output or {}).get("truth_index")

        self._logger.info("sweep_candidate_refreshed", product_id=product_id, truth_index=truth_index)
        return SweepCandidateResult(
            product_id=product_id,
            ok=True,
            status=f"refreshed (TI: {truth_index if truth_index is not None else 'n/a'})",
            completed_stages=completed,
            truth_index=truth_index,
        )
