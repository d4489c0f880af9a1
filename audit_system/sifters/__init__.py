"""Deterministic evidence and discrepancy processing.

- EvidenceCorroborator: claim fragments -> corroborated claim set
- discrepancy_normalizer: stage 3 normalization and bucket scoring
"""

from audit_system.sifters.evidence_corroborator import (
    EvidenceCorroborator,
    canonicalize_claim,
)
from audit_system.sifters.discrepancy_normalizer import (
    build_metric_bars,
    compute_base_score,
    compute_bucket_scores,
    normalize_discrepancies,
)

__all__ = [
    "EvidenceCorroborator",
    "canonicalize_claim",
    "build_metric_bars",
    "compute_base_score",
    "compute_bucket_scores",
    "normalize_discrepancies",
]
