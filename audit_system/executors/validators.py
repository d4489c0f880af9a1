"""Stage payload validators.

A stage can never be marked done with structurally invalid or empty data.
Each validator is pure and returns a ValidationOutcome with a short reason
code that ends up on the StageRecord error.
"""

from typing import Any

from audit_system.executors.base_executor import ValidationOutcome
from audit_system.sifters.discrepancy_normalizer import DISCREPANCY_ARRAY_KEYS


def validate_claim_profile(data: Any) -> ValidationOutcome:
    if not isinstance(data, dict):
        return ValidationOutcome.fail("missing_data")
    rows = data.get("claim_profile")
    if not isinstance(rows, list) or not rows:
        return ValidationOutcome.fail("empty_claim_profile")
    for row in rows:
        if not isinstance(row, dict) or not row.get("label"):
            return ValidationOutcome.fail("missing_label", len(rows))
    return ValidationOutcome.ok(len(rows))


def validate_evidence(data: Any, min_claims: int, min_sources: int) -> ValidationOutcome:
    """Stage 2 floor: enough corroborated claims from enough sources."""
    if not isinstance(data, dict):
        return ValidationOutcome.fail("missing_data")
    claims = data.get("claims")
    if not isinstance(claims, list):
        return ValidationOutcome.fail("missing_claims")
    if len(claims) < min_claims:
        return ValidationOutcome.fail("insufficient_claims", len(claims))
    if int(data.get("source_count") or 0) < min_sources:
        return ValidationOutcome.fail("insufficient_sources", len(claims))
    return ValidationOutcome.ok(len(claims))


def validate_discrepancies(data: Any) -> ValidationOutcome:
    """
    Stage 3: a discrepancy array under a known key.

    An empty array is valid (no discrepancies found). Every item needs a
    claim or label plus at least one verification field.
    """
    if not isinstance(data, dict) or not data:
        return ValidationOutcome.fail("missing_data")

    items = None
    for key in DISCREPANCY_ARRAY_KEYS:
        if isinstance(data.get(key), list):
            items = data[key]
            break
    if items is None:
        return ValidationOutcome.fail("no_valid_array_found")

    for item in items:
        if not isinstance(item, dict):
            return ValidationOutcome.fail("invalid_item", len(items))
        if not item.get("claim") and not item.get("label"):
            return ValidationOutcome.fail("missing_claim_field", len(items))
        if not any(item.get(field) for field in ("reality", "verdict", "severity", "status")):
            return ValidationOutcome.fail("missing_verification_field", len(items))

    return ValidationOutcome.ok(len(items))


def validate_assessment(data: Any) -> ValidationOutcome:
    """Stage 4: numeric truth_index, interpretation, strengths and limitations."""
    if not isinstance(data, dict):
        return ValidationOutcome.fail("missing_data")
    truth_index = data.get("truth_index")
    if isinstance(truth_index, bool) or not isinstance(truth_index, (int, float)):
        return ValidationOutcome.fail("missing_truth_index")
    if not data.get("score_interpretation"):
        return ValidationOutcome.fail("missing_score_interpretation")
    if not isinstance(data.get("strengths"), list) or not isinstance(data.get("limitations"), list):
        return ValidationOutcome.fail("missing_arrays")
    return ValidationOutcome.ok()
