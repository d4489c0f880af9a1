"""Stage 1: manufacturer claim profile.

Pure derivation from the product's raw specifications; identical input
always yields identical output. No external calls.
"""

from typing import Any, Iterable

from audit_system.data_management.schemas import (
    ClaimProfileOutput,
    Product,
    SpecRow,
    StageId,
)
from audit_system.executors.base_executor import (
    BaseStageExecutor,
    StageInputs,
    ValidationOutcome,
)
from audit_system.executors.validators import validate_claim_profile

LABEL_KEYS = ("label", "name", "key", "title")
VALUE_KEYS = ("value", "val", "display_value", "spec_value")
MISSING_VALUE = "—"
DROPPED_VALUES = {"not specified", "null", "undefined"}


def _first(spec: dict[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = spec.get(key)
        if value not in (None, ""):
            return value
    return None


def _format_value(value: Any) -> str:
    if value is None:
        return MISSING_VALUE
    text = str(value).strip()
    return text or MISSING_VALUE


def spec_rows(technical_specs: Any) -> list[SpecRow]:
    """
    Normalize raw specifications into label/value rows.

    Accepts a label->value mapping or a list of dicts with any of the known
    label / value key spellings. Rows whose value is a placeholder such as
    "not specified" are dropped; missing values render as an em dash.
    """
    pairs: list[tuple[Any, Any]] = []
    if isinstance(technical_specs, dict):
        pairs = list(technical_specs.items())
    elif isinstance(technical_specs, list):
        for spec in technical_specs:
            if isinstance(spec, dict):
                pairs.append((_first(spec, LABEL_KEYS), _first(spec, VALUE_KEYS)))

    rows: list[SpecRow] = []
    for label, value in pairs:
        label_text = str(label).strip() if label is not None else ""
        if not label_text:
            continue
        value_text = _format_value(value)
        if value_text.lower() in DROPPED_VALUES:
            continue
        rows.append(SpecRow(label=label_text, value=value_text))
    return rows


def identity_rows(product: Product) -> list[SpecRow]:
    return [
        SpecRow(label="Brand", value=product.brand or "Unknown"),
        SpecRow(label="Model", value=product.model_name or "Unknown"),
        SpecRow(label="Category", value=product.category or "Unknown"),
    ]


def _number(value: float) -> str:
    return f"{value:g}"


def build_claim_profile(product: Product) -> ClaimProfileOutput:
    """Identity rows followed by spec rows, or the fallback profile."""
    rows = spec_rows(product.technical_specs)
    if rows:
        return ClaimProfileOutput(claim_profile=identity_rows(product) + rows)

    fallback = identity_rows(product)
    if product.weight_lbs:
        fallback.append(SpecRow(label="Weight", value=f"{_number(product.weight_lbs)} lbs"))
    if product.msrp_usd:
        fallback.append(SpecRow(label="MSRP", value=f"${_number(product.msrp_usd)}"))
    return ClaimProfileOutput(claim_profile=fallback)


class ClaimProfileExecutor(BaseStageExecutor):
    """Stage 1 executor."""

    stage_id = StageId.CLAIM_PROFILE

    async def execute(self, product: Product, inputs: StageInputs) -> dict[str, Any]:
        profile = build_claim_profile(product)
        self.logger.debug(
            f"Built claim profile with {len(profile.claim_profile)} rows",
            product_id=product.product_id,
        )
        return profile.model_dump(mode="json")

    def validate(self, raw: Any) -> ValidationOutcome:
        return validate_claim_profile(raw)
