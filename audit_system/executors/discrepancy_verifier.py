"""Stage 3: discrepancy verification.

Cross-references the stage 1 claim profile with the stage 2 corroborated
evidence through one inference call, then normalizes the result into
deduplicated, severity-ranked, bucket-tagged entries.
"""

from typing import Any

from audit_system.config.prompts import (
    VERIFICATION_PROMPT,
    VERIFICATION_TEMPERATURE,
    format_lines,
)
from audit_system.data_management.schemas import Product, StageId
from audit_system.executors.base_executor import (
    BaseStageExecutor,
    StageInputs,
    ValidationOutcome,
)
from audit_system.executors.evidence_discovery import claim_lines
from audit_system.executors.validators import validate_discrepancies
from audit_system.llm.gemini_client import GeminiClient
from audit_system.sifters.discrepancy_normalizer import normalize_discrepancies


def evidence_lines(evidence: dict[str, Any], limit: int = 25) -> list[str]:
    claims = (evidence or {}).get("claims") or []
    lines = []
    for claim in claims[:limit]:
        samples = claim.get("samples") or [claim.get("claim_key", "")]
        lines.append(f"{samples[0]} ({claim.get('frequency', 0)} mentions)")
    return lines


class DiscrepancyVerifier(BaseStageExecutor):
    """Stage 3 executor."""

    stage_id = StageId.DISCREPANCIES

    def __init__(self, client: GeminiClient):
        super().__init__()
        self.client = client

    async def execute(self, product: Product, inputs: StageInputs) -> dict[str, Any]:
        prompt = VERIFICATION_PROMPT.format(
            product_name=product.display_name,
            claim_lines=format_lines(claim_lines(inputs.get(StageId.CLAIM_PROFILE))),
            evidence_lines=format_lines(evidence_lines(inputs.get(StageId.EVIDENCE, {}))),
        )
        raw = await self.client.generate_json(
            prompt,
            temperature=VERIFICATION_TEMPERATURE,
            max_output_tokens=8192,
        )
        return raw if isinstance(raw, dict) else {}

    def validate(self, raw: Any) -> ValidationOutcome:
        return validate_discrepancies(raw)

    def finalize(self, raw: dict[str, Any]) -> dict[str, Any]:
        normalized = normalize_discrepancies(raw)
        self.logger.debug(
            f"Normalized {normalized.total_count} discrepancies to {normalized.unique_count}"
        )
        return normalized.model_dump(mode="json")
