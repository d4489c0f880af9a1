"""Normalized output shapes persisted for each stage.

Executors build these models and the orchestrator persists
model_dump(mode="json") as the StageRecord output.
"""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from audit_system.data_management.schemas.evidence_schema import (
    CorroboratedClaim,
    SourceRef,
)


class SpecRow(BaseModel):
    label: str
    value: str


class ClaimProfileOutput(BaseModel):
    """Stage 1: manufacturer claims as label/value rows."""

    claim_profile: list[SpecRow] = Field(default_factory=list)


class EvidenceOutput(BaseModel):
    """Stage 2: discovered sources and the corroborated claim set."""

    sources: list[SourceRef] = Field(default_factory=list)
    fetched_count: int = 0
    source_count: int = 0
    claim_count: int = 0
    claims: list[CorroboratedClaim] = Field(default_factory=list)


class Severity(str, Enum):
    MINOR = "minor"
    MODERATE = "moderate"
    SEVERE = "severe"


ScoringBucket = Literal["claims_accuracy", "real_world_fit", "operational_noise"]


class DiscrepancyEntry(BaseModel):
    """One deduplicated claim-vs-reality discrepancy."""

    key: str
    claim: str
    reality: str = ""
    impact: str = ""
    severity: Severity = Severity.MINOR
    tags: list[ScoringBucket] = Field(default_factory=list)


class DiscrepancyOutput(BaseModel):
    """Stage 3: verified discrepancies and the per-claim reality ledger."""

    entries: list[DiscrepancyEntry] = Field(default_factory=list)
    reality_ledger: list[SpecRow] = Field(default_factory=list)
    total_count: int = 0
    unique_count: int = 0


class MetricBar(BaseModel):
    label: str
    rating: Literal["High", "Moderate", "Low"]
    percentage: int = Field(..., ge=0, le=100)


class AssessmentOutput(BaseModel):
    """Stage 4: truth index and narrative verdict."""

    truth_index: int = Field(..., ge=0, le=100)
    base_score: int = Field(..., ge=0, le=100)
    component_scores: dict[str, int] = Field(default_factory=dict)
    metric_bars: list[MetricBar] = Field(default_factory=list)
    score_interpretation: str
    strengths: list[str] = Field(default_factory=list)
    limitations: list[str] = Field(default_factory=list)
    practical_impact: list[str] = Field(default_factory=list)
    good_fit: list[str] = Field(default_factory=list)
    consider_alternatives: list[str] = Field(default_factory=list)
