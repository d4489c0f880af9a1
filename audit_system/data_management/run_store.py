"""AuditRun storage with an atomic work claim.

claim_next() is the only way a run moves from QUEUED to RUNNING. Every
mutation is one critical section: the asyncio lock for this instance plus
the document's cross-process file lock, with the runs re-read from disk
before the change is applied. Two claimers, in one process or in separate
worker processes sharing the store file, can never receive the same run.

Hand-backs (release / complete / fail) carry the claim token returned by
claim_next (the run's attempt_count). A hand-back from a worker whose
claim was released after a lease expiry, and possibly re-claimed, raises
StaleClaimError instead of overwriting the current holder's state.

Usage:
    from audit_system.data_management.run_store import AuditRunStore

    store = AuditRunStore()
    run = await store.create("p-1")
    claimed = await store.claim_next()
    await store.release(
        claimed.run_id, StageId.EVIDENCE, states, claim_token=claimed.attempt_count
    )
"""

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import structlog

from audit_system.data_management.persistence import JsonPersistence
from audit_system.data_management.schemas import (
    ACTIVE_RUN_STATUSES,
    AuditRun,
    RunStatus,
    StageId,
    StageStatus,
)
from audit_system.errors import StaleClaimError


class AuditRunStore:
    """Storage for audit runs keyed by run_id."""

    def __init__(self, persistence_path: Optional[str | Path] = None) -> None:
        self._runs: dict[str, AuditRun] = {}
        self._lock = asyncio.Lock()
        self._persistence = JsonPersistence(persistence_path)
        self._logger = structlog.get_logger().bind(component="AuditRunStore")
        self._load()

    async def create(self, product_id: str, force_redo: bool = False) -> AuditRun:
        """Queue a run for a product.

        Idempotent per product: if the product already has a queued or
        running run, that run is returned instead of a new one.
        """
        async with self._lock:
            with self._persistence.locked():
                self._load()
                for run in self._runs.values():
                    if run.product_id == product_id and run.status in ACTIVE_RUN_STATUSES:
                        self._logger.info(
                            "run_already_active",
                            run_id=run.run_id,
                            product_id=product_id,
                        )
                        return run.model_copy(deep=True)

                run = AuditRun(
                    product_id=product_id,
                    force_redo=force_redo,
                    stage_states={stage.key: StageStatus.PENDING for stage in StageId},
                )
                self._runs[run.run_id] = run
                self._save()

            self._logger.info("run_created", run_id=run.run_id, product_id=product_id)
            return run.model_copy(deep=True)

    async def get(self, run_id: str) -> Optional[AuditRun]:
        async with self._lock:
            self._load()
            run = self._runs.get(run_id)
            return run.model_copy(deep=True) if run else None

    async def find_active(self, product_id: str) -> Optional[AuditRun]:
        async with self._lock:
            self._load()
            for run in self._runs.values():
                if run.product_id == product_id and run.status in ACTIVE_RUN_STATUSES:
                    return run.model_copy(deep=True)
            return None

    async def list_by_status(
        self,
        status: Optional[RunStatus] = None,
        limit: Optional[int] = None,
    ) -> list[AuditRun]:
        """Runs ordered by creation time, optionally filtered by status."""
        async with self._lock:
            self._load()
            runs = sorted(
                (r for r in self._runs.values() if status is None or r.status == status),
                key=lambda r: r.created_at,
            )
            if limit is not None:
                runs = runs[:limit]
            return [r.model_copy(deep=True) for r in runs]

    async def claim_next(self) -> Optional[AuditRun]:
        """Atomically claim the oldest queued run.

        Returns:
            The claimed run (now RUNNING, attempt_count incremented), or
            None when nothing is queued. The returned attempt_count is the
            claim token for the hand-back call.
        """
        async with self._lock:
            with self._persistence.locked():
                self._load()
                queued = [r for r in self._runs.values() if r.status == RunStatus.QUEUED]
                if not queued:
                    return None

                run = min(queued, key=lambda r: r.created_at)
                now = datetime.now(timezone.utc)
                run.status = RunStatus.RUNNING
                run.attempt_count += 1
                run.claimed_at = now
                run.updated_at = now
                self._save()

            self._logger.info(
                "run_claimed",
                run_id=run.run_id,
                product_id=run.product_id,
                cursor=run.cursor.value if run.cursor else None,
                attempt=run.attempt_count,
            )
            return run.model_copy(deep=True)

    async def release(
        self,
        run_id: str,
        cursor: StageId,
        stage_states: dict[str, StageStatus],
        *,
        claim_token: int,
    ) -> AuditRun:
        """Advance the cursor and return a claimed run to the queue."""
        return await self._finish_claim(
            run_id,
            claim_token,
            RunStatus.QUEUED,
            cursor=cursor,
            stage_states=stage_states,
        )

    async def complete(
        self,
        run_id: str,
        stage_states: dict[str, StageStatus],
        *,
        claim_token: int,
    ) -> AuditRun:
        return await self._finish_claim(
            run_id,
            claim_token,
            RunStatus.COMPLETE,
            cursor=None,
            stage_states=stage_states,
        )

    async def fail(
        self,
        run_id: str,
        error: str,
        stage_states: Optional[dict[str, StageStatus]] = None,
        *,
        claim_token: int,
    ) -> AuditRun:
        return await self._finish_claim(
            run_id,
            claim_token,
            RunStatus.FAILED,
            error=error,
            stage_states=stage_states,
        )

    async def retry(self, run_id: str) -> Optional[AuditRun]:
        """Re-queue a failed run at its current cursor.

        Returns None for unknown runs; runs that are not failed are returned
        unchanged.
        """
        async with self._lock:
            with self._persistence.locked():
                self._load()
                run = self._runs.get(run_id)
                if run is None:
                    return None
                if run.status != RunStatus.FAILED:
                    return run.model_copy(deep=True)

                run.status = RunStatus.QUEUED
                run.error = None
                run.finished_at = None
                run.updated_at = datetime.now(timezone.utc)
                self._save()

            self._logger.info("run_requeued", run_id=run_id, cursor=run.cursor)
            return run.model_copy(deep=True)

    async def release_stale_claims(self, lease_seconds: int) -> list[str]:
        """Re-queue RUNNING runs whose claim is older than the lease.

        The previous holder's token stays behind: the next claim bumps
        attempt_count, and any late hand-back from that holder is rejected.

        Returns:
            IDs of the runs returned to the queue.
        """
        released: list[str] = []
        async with self._lock:
            with self._persistence.locked():
                self._load()
                now = datetime.now(timezone.utc)
                cutoff = now - timedelta(seconds=lease_seconds)
                for run in self._runs.values():
                    if run.status != RunStatus.RUNNING:
                        continue
                    if (run.claimed_at or run.updated_at) < cutoff:
                        run.status = RunStatus.QUEUED
                        run.claimed_at = None
                        run.updated_at = now
                        released.append(run.run_id)
                if released:
                    self._save()

        if released:
            self._logger.warning("stale_claims_released", run_ids=released)
        return released

    async def _finish_claim(
        self,
        run_id: str,
        claim_token: int,
        status: RunStatus,
        cursor: Optional[StageId] = None,
        stage_states: Optional[dict[str, StageStatus]] = None,
        error: Optional[str] = None,
    ) -> AuditRun:
        async with self._lock:
            with self._persistence.locked():
                self._load()
                run = self._runs.get(run_id)
                if run is None:
                    raise KeyError(f"Run not found: {run_id}")
                if run.status != RunStatus.RUNNING or run.attempt_count != claim_token:
                    raise StaleClaimError(
                        run_id, claim_token, run.attempt_count, run.status.value
                    )

                now = datetime.now(timezone.utc)
                run.status = status
                if status != RunStatus.FAILED:
                    run.cursor = cursor
                if stage_states is not None:
                    run.stage_states = dict(stage_states)
                run.error = error
                run.claimed_at = None
                run.updated_at = now
                if status in (RunStatus.COMPLETE, RunStatus.FAILED):
                    run.finished_at = now
                self._save()

            self._logger.info(
                "run_status_changed",
                run_id=run_id,
                old_status=RunStatus.RUNNING.value,
                new_status=status.value,
                cursor=run.cursor.value if run.cursor else None,
                error=error,
            )
            return run.model_copy(deep=True)

    def _load(self) -> None:
        """Replace in-memory runs with the persisted document, if any."""
        if not self._persistence.enabled:
            return
        data = self._persistence.load() or {}
        self._runs = {run_id: AuditRun.model_validate(raw) for run_id, raw in data.items()}

    def _save(self) -> None:
        if self._persistence.enabled:
            self._persistence.save(
                {run_id: run.model_dump(mode="json") for run_id, run in self._runs.items()}
            )
