"""Deterministic normalization of verified discrepancies.

Turns the raw stage 3 inference result into stable scoring input:
- Severity words collapse onto minor / moderate / severe
- Entries are deduplicated by normalized claim::reality key (first wins)
- Capacity issues that are really about add-on batteries are dropped
- Every entry is tagged with the scoring buckets its text touches

Scoring (start 100 per bucket, subtract per-severity penalties, weighted
blend) lives here as well so stage 3 output and stage 4 scores can never
disagree about what an entry is worth.
"""

import math
import re
from typing import Any, Optional

from audit_system.data_management.schemas import (
    DiscrepancyEntry,
    DiscrepancyOutput,
    MetricBar,
    Severity,
    SpecRow,
)

DISCREPANCY_ARRAY_KEYS = ("red_flags", "fact_checks", "checks", "discrepancies")

BUCKET_KEYWORDS: dict[str, tuple[str, ...]] = {
    "operational_noise": (
        "connectivity", "app", "firmware", "bluetooth", "wifi",
        "software", "pairing", "disconnect", "update", "sync",
        "noise", "fan", "loud", "decibel", "db",
    ),
    "real_world_fit": (
        "weight", "portab", "setup", "compatib", "voltage",
        "dimension", "size", "bulk", "transport", "placement",
        "proprietary", "cable", "expansion", "ecosystem",
    ),
    "claims_accuracy": (
        "spec", "mismatch", "runtime", "watt", "wh", "charging",
        "capacity", "output", "input", "efficiency", "cycle",
        "rated", "actual", "advertised", "claimed",
    ),
}
DEFAULT_BUCKET = "claims_accuracy"

SEVERITY_PENALTY: dict[Severity, int] = {
    Severity.SEVERE: 15,
    Severity.MODERATE: 10,
    Severity.MINOR: 5,
}

BUCKET_WEIGHTS: dict[str, float] = {
    "claims_accuracy": 0.45,
    "real_world_fit": 0.35,
    "operational_noise": 0.20,
}

METRIC_BAR_LABELS: dict[str, str] = {
    "claims_accuracy": "Claims Accuracy",
    "real_world_fit": "Real-World Fit",
    "operational_noise": "Operational Noise",
}

_SEVERE_WORDS = {"severe", "high", "critical"}
_MODERATE_WORDS = {"moderate", "medium", "med"}
_ADDON_MARKERS = ("add-on", "expansion", "extra battery", "shelf")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_text(text: Optional[str]) -> str:
    """Lower-case, keep only a-z0-9 and spaces, collapse whitespace."""
    text = _NON_ALNUM_RE.sub("", (text or "").lower())
    return _WHITESPACE_RE.sub(" ", text).strip()


def normalize_severity(raw: Any) -> Severity:
    value = str(raw or "").strip().lower()
    if value in _SEVERE_WORDS:
        return Severity.SEVERE
    if value in _MODERATE_WORDS:
        return Severity.MODERATE
    return Severity.MINOR


def derive_key(claim: str, reality: str, impact: str) -> str:
    norm_claim = normalize_text(claim)
    norm_reality = normalize_text(reality)
    if norm_claim and norm_reality:
        return f"{norm_claim}::{norm_reality}"
    if norm_claim and impact:
        return f"{norm_claim}::{normalize_text(impact)}"
    return norm_claim or normalize_text(impact) or "unknown"


def assign_buckets(claim: str, reality: str, impact: str) -> list[str]:
    combined = " ".join((claim, reality, impact)).lower()
    tags = [
        bucket
        for bucket, keywords in BUCKET_KEYWORDS.items()
        if any(keyword in combined for keyword in keywords)
    ]
    return tags or [DEFAULT_BUCKET]


def is_addon_false_positive(text: str) -> bool:
    """Capacity complaint that is really about an optional extra battery."""
    lowered = text.lower()
    is_capacity = "capacity" in lowered or "wh" in lowered
    return is_capacity and any(marker in lowered for marker in _ADDON_MARKERS)


def discrepancy_items(raw: dict[str, Any]) -> list[Any]:
    """The first discrepancy array present in a raw verification result."""
    for key in DISCREPANCY_ARRAY_KEYS:
        value = raw.get(key)
        if isinstance(value, list):
            return value
    return []


def _text(item: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = item.get(key)
        if value:
            return str(value).strip()
    return ""


def normalize_discrepancies(raw: dict[str, Any]) -> DiscrepancyOutput:
    """
    Normalize a validated stage 3 result.

    Args:
        raw: Parsed inference result (already structurally validated)

    Returns:
        DiscrepancyOutput with deduplicated, tagged entries and the reality ledger
    """
    candidates = discrepancy_items(raw)
    seen: dict[str, DiscrepancyEntry] = {}

    for item in candidates:
        if not isinstance(item, dict):
            continue
        claim = _text(item, "claim", "label", "issue")
        reality = _text(item, "reality", "verdict", "description")
        raw_impact = _text(item, "impact")
        impact = raw_impact if not raw_impact or raw_impact.endswith(".") else f"{raw_impact}."

        if not claim and not reality:
            continue
        if is_addon_false_positive(f"{claim} {reality} {impact}"):
            continue

        key = derive_key(claim, reality, impact)
        if key in seen:
            continue

        seen[key] = DiscrepancyEntry(
            key=key,
            claim=claim,
            reality=reality,
            impact=impact,
            severity=normalize_severity(item.get("severity") or item.get("status")),
            tags=assign_buckets(claim, reality, impact),
        )

    ledger = [
        SpecRow(label=str(row.get("label", "")).strip(), value=str(row.get("value", "")).strip())
        for row in raw.get("reality_ledger") or []
        if isinstance(row, dict) and row.get("label")
    ]

    entries = list(seen.values())
    return DiscrepancyOutput(
        entries=entries,
        reality_ledger=ledger,
        total_count=len(candidates),
        unique_count=len(entries),
    )


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_bucket_scores(entries: list[DiscrepancyEntry]) -> dict[str, int]:
    """Per-bucket scores: 100 minus severity penalties of tagged entries, clamped."""
    scores = {bucket: 100 for bucket in BUCKET_WEIGHTS}
    for entry in entries:
        penalty = SEVERITY_PENALTY[entry.severity]
        for tag in entry.tags:
            scores[tag] -= penalty
    return {bucket: max(0, min(100, score)) for bucket, score in scores.items()}


def compute_base_score(bucket_scores: dict[str, int]) -> int:
    """Weighted blend 0.45 / 0.35 / 0.20, rounded half up."""
    blended = sum(BUCKET_WEIGHTS[bucket] * bucket_scores[bucket] for bucket in BUCKET_WEIGHTS)
    return max(0, min(100, round_half_up(blended)))


def rating_label(score: int) -> str:
    if score >= 85:
        return "High"
    if score >= 60:
        return "Moderate"
    return "Low"


def build_metric_bars(bucket_scores: dict[str, int]) -> list[MetricBar]:
    return [
        MetricBar(
            label=METRIC_BAR_LABELS[bucket],
            rating=rating_label(bucket_scores[bucket]),
            percentage=bucket_scores[bucket],
        )
        for bucket in BUCKET_WEIGHTS
    ]
