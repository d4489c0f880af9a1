"""Work claim coordinator: pooled workers advancing queued audit runs.

Each activation claims at most one run (atomically, in the run store),
advances it by exactly one stage through the StageOrchestrator, and hands
it back:
- stage ok, more stages left -> run re-queued at the next cursor
- stage ok, last stage       -> run complete
- stage failed               -> run failed with "<code>: <detail>"
- unexpected exception       -> run failed, exception re-raised

Hand-backs carry the claim token (attempt_count) from the claim. If the
claim expired and another worker took the run meanwhile, the hand-back is
rejected by the store and dropped here with claim_lost set on the result.

There is no automatic retry here; whatever re-triggers activations (or an
operator calling retry) decides when a failed run goes back to the queue.
"""

from typing import Awaitable, Optional

from structlog.contextvars import bound_contextvars

from audit_system.data_management.product_store import ProductStore
from audit_system.data_management.run_store import AuditRunStore
from audit_system.data_management.schemas import AuditRun, StageStatus
from audit_system.errors import NotFoundError, StaleClaimError
from audit_system.orchestration.schemas import WorkerStepResult
from audit_system.orchestration.stage_orchestrator import StageOrchestrator
from audit_system.utils.logging import get_structured_logger


class WorkClaimCoordinator:
    """Queue front-end and single-step worker for AuditRuns."""

    def __init__(
        self,
        runs: AuditRunStore,
        orchestrator: StageOrchestrator,
        products: ProductStore,
        lease_seconds: int = 900,
    ) -> None:
        self._runs = runs
        self._orchestrator = orchestrator
        self._products = products
        self._lease_seconds = lease_seconds
        self._logger = get_structured_logger("WorkClaimCoordinator")

    async def enqueue(self, product_id: str, force_redo: bool = False) -> AuditRun:
        """Queue a run, or return the product's already active run.

        Raises:
            NotFoundError: Unknown product.
        """
        if await self._products.get(product_id) is None:
            raise NotFoundError("product_not_found", f"product {product_id} not found")
        return await self._runs.create(product_id, force_redo=force_redo)

    async def get_run(self, run_id: str) -> Optional[AuditRun]:
        return await self._runs.get(run_id)

    async def claim_next(self) -> Optional[AuditRun]:
        """Atomically claim the oldest queued run, or None when idle."""
        return await self._runs.claim_next()

    async def process_next(self) -> WorkerStepResult:
        """One worker activation: claim, advance one stage, hand back.

        Returns:
            WorkerStepResult; idle with CLAIM_EMPTY when nothing is queued.

        Raises:
            Exception: Anything unexpected from the stage run, after the
                run has been marked failed.
        """
        run = await self.claim_next()
        if run is None:
            self._logger.debug("worker_idle")
            return WorkerStepResult.empty()

        with bound_contextvars(run_id=run.run_id, product_id=run.product_id):
            return await self._advance(run)

    async def _advance(self, run: AuditRun) -> WorkerStepResult:
        token = run.attempt_count
        stage = run.cursor
        if stage is None:
            completed = await self._hand_back(
                run, self._runs.complete(run.run_id, run.stage_states, claim_token=token)
            )
            return WorkerStepResult(ok=True, run=completed, claim_lost=completed is None)

        try:
            outcome = await self._orchestrator.run_stage(
                run.product_id, stage, force_redo=run.force_redo
            )
        except Exception as e:
            await self._hand_back(
                run,
                self._runs.fail(run.run_id, f"{type(e).__name__}: {e}", claim_token=token),
            )
            self._logger.error(
                "run_failed",
                run_id=run.run_id,
                stage=stage.value,
                error=str(e),
                exc_info=True,
            )
            raise

        states = await self._stage_states(run.product_id)

        if not outcome.ok:
            error = f"{outcome.error.value}: {outcome.detail}"
            failed = await self._hand_back(
                run, self._runs.fail(run.run_id, error, states, claim_token=token)
            )
            self._logger.warning(
                "run_failed",
                run_id=run.run_id,
                stage=stage.value,
                error=error,
            )
            return WorkerStepResult(
                ok=False,
                error=outcome.error,
                run=failed or await self._runs.get(run.run_id),
                stage=stage,
                outcome=outcome,
                claim_lost=failed is None,
            )

        next_stage = stage.next
        if next_stage is None:
            updated = await self._hand_back(
                run, self._runs.complete(run.run_id, states, claim_token=token)
            )
            if updated is not None:
                self._logger.info("run_completed", run_id=run.run_id)
        else:
            updated = await self._hand_back(
                run, self._runs.release(run.run_id, next_stage, states, claim_token=token)
            )
            if updated is not None:
                self._logger.info(
                    "run_advanced",
                    run_id=run.run_id,
                    stage=stage.value,
                    next_stage=next_stage.value,
                    cached=outcome.cached,
                )

        return WorkerStepResult(
            ok=True,
            run=updated or await self._runs.get(run.run_id),
            stage=stage,
            outcome=outcome,
            claim_lost=updated is None,
        )

    async def _hand_back(
        self, run: AuditRun, transition: Awaitable[AuditRun]
    ) -> Optional[AuditRun]:
        """Apply a hand-back; None when the claim was lost to another worker.

        The stage's own result is already committed by the orchestrator, so
        a lost claim only drops this worker's view of the run's progress.
        """
        try:
            return await transition
        except StaleClaimError as e:
            self._logger.warning(
                "stale_claim_dropped",
                run_id=run.run_id,
                claim_token=e.claim_token,
                current_token=e.current_token,
                run_status=e.status,
            )
            return None

    async def _stage_states(self, product_id: str) -> dict[str, StageStatus]:
        records = await self._orchestrator.get_status(product_id)
        return {stage.key: record.status for stage, record in records.items()}

    async def retry(self, run_id: str) -> AuditRun:
        """Re-queue a failed run at its current cursor.

        Raises:
            NotFoundError: Unknown run.
        """
        run = await self._runs.retry(run_id)
        if run is None:
            raise NotFoundError("run_not_found", f"run {run_id} not found")
        return run

    async def release_stale_claims(self) -> list[str]:
        """Return runs whose claim outlived the lease to the queue."""
        return await self._runs.release_stale_claims(self._lease_seconds)
