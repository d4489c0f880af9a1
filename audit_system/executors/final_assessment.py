"""Stage 4: truth index and narrative verdict.

Scores are deterministic: bucket scores and the weighted base come from the
normalized stage 3 entries. The inference call only writes the narrative; its
truth_index is accepted when within 3 points of the base, otherwise the base
stands. Narrative strings are passed through a banned-phrase rewrite.
"""

import re
from typing import Any

from audit_system.config.prompts import (
    ASSESSMENT_PROMPT,
    ASSESSMENT_TEMPERATURE,
    format_lines,
)
from audit_system.data_management.schemas import (
    AssessmentOutput,
    DiscrepancyEntry,
    Product,
    StageId,
)
from audit_system.executors.base_executor import (
    BaseStageExecutor,
    StageInputs,
    ValidationOutcome,
)
from audit_system.executors.discrepancy_verifier import evidence_lines
from audit_system.executors.evidence_discovery import claim_lines
from audit_system.executors.validators import validate_assessment
from audit_system.llm.gemini_client import GeminiClient
from audit_system.sifters.discrepancy_normalizer import (
    build_metric_bars,
    compute_base_score,
    compute_bucket_scores,
    round_half_up,
)

MAX_ADJUSTMENT = 3
NARRATIVE_LIST_FIELDS = (
    "strengths",
    "limitations",
    "practical_impact",
    "good_fit",
    "consider_alternatives",
)
_SCORING_KEY = "_scoring"

BANNED_PHRASES: list[tuple[re.Pattern, str]] = [
    (re.compile(r"technical debt", re.IGNORECASE), "ongoing maintenance cost"),
    (re.compile(r"non-production environments?", re.IGNORECASE), "casual or secondary use"),
    (re.compile(r"\benterprise\b", re.IGNORECASE), "professional"),
    (re.compile(r"\bstakeholder", re.IGNORECASE), "user"),
    (re.compile(r"\bleverage\b", re.IGNORECASE), "use"),
    (re.compile(r"\bsynergy\b", re.IGNORECASE), "compatibility"),
    (re.compile(r"ecosystem lock-in", re.IGNORECASE), "vendor dependency"),
    (re.compile(r"\brobust\b", re.IGNORECASE), "reliable"),
    (re.compile(r"\bscalable\b", re.IGNORECASE), "expandable"),
    (re.compile(r"high raw (\w+ )?capacity", re.IGNORECASE), r"large advertised \1capacity"),
]


def sanitize_copy(text: str) -> str:
    """Rewrite jargon the consumer-facing copy must not contain."""
    for pattern, replacement in BANNED_PHRASES:
        text = pattern.sub(replacement, text)
    return text


def resolve_truth_index(base: int, suggested: Any) -> int:
    """The model's index if within MAX_ADJUSTMENT of base, else base."""
    if isinstance(suggested, bool) or not isinstance(suggested, (int, float)):
        return base
    candidate = max(0, min(100, round_half_up(float(suggested))))
    return candidate if abs(candidate - base) <= MAX_ADJUSTMENT else base


def discrepancy_lines(entries: list[DiscrepancyEntry]) -> list[str]:
    return [
        f"[{e.severity.value}] CLAIM: {e.claim} -> REALITY: {e.reality} (Impact: {e.impact or 'n/a'})"
        for e in entries
    ]


class FinalAssessor(BaseStageExecutor):
    """Stage 4 executor."""

    stage_id = StageId.ASSESSMENT

    def __init__(self, client: GeminiClient):
        super().__init__()
        self.client = client

    async def execute(self, product: Product, inputs: StageInputs) -> dict[str, Any]:
        discrepancies = inputs.get(StageId.DISCREPANCIES) or {}
        entries = [DiscrepancyEntry.model_validate(e) for e in discrepancies.get("entries", [])]

        bucket_scores = compute_bucket_scores(entries)
        base = compute_base_score(bucket_scores)

        prompt = ASSESSMENT_PROMPT.format(
            product_name=product.display_name,
            base_score=base,
            claims_accuracy=bucket_scores["claims_accuracy"],
            real_world_fit=bucket_scores["real_world_fit"],
            operational_noise=bucket_scores["operational_noise"],
            claim_lines=format_lines(claim_lines(inputs.get(StageId.CLAIM_PROFILE))[:8]),
            evidence_lines=format_lines(evidence_lines(inputs.get(StageId.EVIDENCE, {}), limit=10)),
            discrepancy_count=len(entries),
            discrepancy_lines=format_lines(discrepancy_lines(entries)),
        )
        raw = await self.client.generate_json(
            prompt,
            temperature=ASSESSMENT_TEMPERATURE,
            max_output_tokens=1536,
        )
        if not isinstance(raw, dict):
            return {}

        result = dict(raw)
        result[_SCORING_KEY] = {"base": base, "buckets": bucket_scores}
        return result

    def validate(self, raw: Any) -> ValidationOutcome:
        return validate_assessment(raw)

    def finalize(self, raw: dict[str, Any]) -> dict[str, Any]:
        scoring = raw[_SCORING_KEY]
        base = scoring["base"]
        bucket_scores = scoring["buckets"]
        truth_index = resolve_truth_index(base, raw.get("truth_index"))

        self.logger.info(
            f"Truth index base={base} suggested={raw.get('truth_index')} final={truth_index}"
        )

        narrative = {
            field: [sanitize_copy(str(item)) for item in raw.get(field) or []]
            for field in NARRATIVE_LIST_FIELDS
        }
        return AssessmentOutput(
            truth_index=truth_index,
            base_score=base,
            component_scores=bucket_scores,
            metric_bars=build_metric_bars(bucket_scores),
            score_interpretation=sanitize_copy(str(raw["score_interpretation"])),
            **narrative,
        ).model_dump(mode="json")
