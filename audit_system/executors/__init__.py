"""Stage executors, one per pipeline stage.

- ClaimProfileExecutor (1): deterministic claim profile
- EvidenceDiscoveryExecutor (2): discovery, fetch, extraction, corroboration
- DiscrepancyVerifier (3): claims vs. evidence through inference
- FinalAssessor (4): deterministic scores plus narrative verdict
"""

from audit_system.executors.base_executor import (
    BaseStageExecutor,
    StageInputs,
    ValidationOutcome,
)
from audit_system.executors.claim_profile import ClaimProfileExecutor
from audit_system.executors.evidence_discovery import EvidenceDiscoveryExecutor
from audit_system.executors.discrepancy_verifier import DiscrepancyVerifier
from audit_system.executors.final_assessment import FinalAssessor

__all__ = [
    "BaseStageExecutor",
    "StageInputs",
    "ValidationOutcome",
    "ClaimProfileExecutor",
    "EvidenceDiscoveryExecutor",
    "DiscrepancyVerifier",
    "FinalAssessor",
]
