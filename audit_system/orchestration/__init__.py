"""Orchestration: stage state machine, work claims, refresh sweep, freshness."""

from audit_system.orchestration.stage_orchestrator import StageOrchestrator
from audit_system.orchestration.work_claims import WorkClaimCoordinator
from audit_system.orchestration.refresh_scheduler import RefreshScheduler
from audit_system.orchestration.freshness import FreshnessChecker
from audit_system.orchestration.schemas import (
    FreshnessReport,
    SweepCandidateResult,
    SweepReport,
    WorkerStepResult,
)

__all__ = [
    "StageOrchestrator",
    "WorkClaimCoordinator",
    "RefreshScheduler",
    "FreshnessChecker",
    "FreshnessReport",
    "SweepCandidateResult",
    "SweepReport",
    "WorkerStepResult",
]
