"""Evidence schemas for stage 2: discovered sources, extracted fragments and
corroborated claims."""

from typing import Optional

from pydantic import BaseModel, Field


class SourceRef(BaseModel):
    """A discovered evidence source."""

    url: str
    source_type: Optional[str] = Field(
        default=None,
        description="review | forum | manual | teardown | gov",
    )


class ClaimFragment(BaseModel):
    """One extracted assertion tied to its source URL.

    Ephemeral: consumed entirely by the EvidenceCorroborator.
    """

    source_url: str
    claim: str
    is_valid: bool = Field(
        default=True,
        description="False when the extraction for this source failed validation",
    )


class CorroboratedClaim(BaseModel):
    """A claim key observed in at least the corroboration minimum of fragments."""

    claim_key: str
    frequency: int = Field(..., ge=1)
    citations: list[str] = Field(default_factory=list)
    samples: list[str] = Field(default_factory=list, max_length=2)

    model_config = {"frozen": True}


class CorroborationResult(BaseModel):
    """Deduplicated, frequency-ranked claim set for one run."""

    claims: list[CorroboratedClaim] = Field(default_factory=list)
    source_count: int = 0
    claim_count: int = 0
