"""Tests for the stage 3 DiscrepancyVerifier and the stage 4 FinalAssessor."""

import pytest

from audit_system.data_management.schemas import Product, StageId
from audit_system.errors import ExecutorFailure, ValidationFailure
from audit_system.executors.discrepancy_verifier import DiscrepancyVerifier, evidence_lines
from audit_system.executors.final_assessment import (
    FinalAssessor,
    resolve_truth_index,
    sanitize_copy,
)
from conftest import FakeInferenceClient


# ── Fixtures ──────────────────────────────────────────────────────────────


@pytest.fixture
def profile() -> dict:
    return {
        "claim_profile": [
            {"label": "Capacity", "value": "1000 Wh"},
            {"label": "Noise", "value": "30 dB"},
        ]
    }


@pytest.fixture
def evidence() -> dict:
    return {
        "claims": [
            {
                "claim_key": "measured 870 wh usable",
                "frequency": 3,
                "citations": ["https://a.example", "https://b.example"],
                "samples": ["Measured 870 Wh usable"],
            },
            {"claim_key": "fan reaches 52 db", "frequency": 2, "citations": [], "samples": []},
        ],
        "source_count": 3,
    }


@pytest.fixture
def verification_response() -> dict:
    return {
        "red_flags": [
            {
                "claim": "1000Wh capacity",
                "reality": "Measured 870Wh usable",
                "impact": "Shorter runtime",
                "severity": "high",
            },
            {"claim": "Quiet operation", "reality": "Fan reaches 52 dB", "severity": "medium"},
        ],
        "reality_ledger": [{"label": "Capacity", "value": "870 Wh"}],
    }


@pytest.fixture
def discrepancy_output(verification_response: dict) -> dict:
    verifier = DiscrepancyVerifier(FakeInferenceClient())
    return verifier.finalize(verification_response)


@pytest.fixture
def assessment_response() -> dict:
    return {
        "truth_index": 90,
        "score_interpretation": "A robust unit whose capacity runs short of the label.",
        "strengths": ["Robust inverter"],
        "limitations": ["High raw battery capacity is not all usable"],
        "practical_impact": ["Plan for about 87% of the rated capacity"],
        "good_fit": ["Weekend camping"],
        "consider_alternatives": ["If you need silent overnight use"],
    }


# ── Stage 3 Tests ─────────────────────────────────────────────────────────


class TestDiscrepancyVerifier:
    def test_evidence_lines(self, evidence: dict) -> None:
        assert evidence_lines(evidence) == [
            "Measured 870 Wh usable (3 mentions)",
            "fan reaches 52 db (2 mentions)",
        ]
        assert evidence_lines({}) == []

    @pytest.mark.asyncio
    async def test_execute_and_finalize(
        self,
        product: Product,
        profile: dict,
        evidence: dict,
        verification_response: dict,
    ) -> None:
        client = FakeInferenceClient([verification_response])
        verifier = DiscrepancyVerifier(client)

        raw = await verifier.execute(
            product, {StageId.CLAIM_PROFILE: profile, StageId.EVIDENCE: evidence}
        )
        assert verifier.validate(raw).valid

        output = verifier.finalize(raw)
        assert output["unique_count"] == 2
        assert output["entries"][0]["severity"] == "severe"
        assert output["reality_ledger"] == [{"label": "Capacity", "value": "870 Wh"}]

        call = client.calls[0]
        assert call["temperature"] == 0.2
        assert "Capacity: 1000 Wh" in call["prompt"]
        assert "Measured 870 Wh usable (3 mentions)" in call["prompt"]

    @pytest.mark.asyncio
    async def test_non_object_response_is_invalid(self, product: Product) -> None:
        verifier = DiscrepancyVerifier(FakeInferenceClient([["not", "an", "object"]]))
        raw = await verifier.execute(product, {})
        assert verifier.validate(raw).reason == "missing_data"

    @pytest.mark.asyncio
    async def test_client_failures_propagate(self, product: Product) -> None:
        verifier = DiscrepancyVerifier(
            FakeInferenceClient([ValidationFailure("invalid_json", "no JSON value found")])
        )
        with pytest.raises(ValidationFailure):
            await verifier.execute(product, {})

        verifier = DiscrepancyVerifier(
            FakeInferenceClient([ExecutorFailure("inference_timeout", "no response within 30s")])
        )
        with pytest.raises(ExecutorFailure):
            await verifier.execute(product, {})


# ── Stage 4 Tests ─────────────────────────────────────────────────────────


class TestTruthIndex:
    @pytest.mark.parametrize(
        "base,suggested,expected",
        [
            (91, 90, 90),
            (91, 94, 94),
            (91, 95, 91),
            (91, 87, 91),
            (91, 89.5, 90),
            (91, None, 91),
            (91, "90", 91),
            (91, True, 91),
        ],
    )
    def test_resolve(self, base, suggested, expected) -> None:
        assert resolve_truth_index(base, suggested) == expected


class TestSanitizeCopy:
    def test_rewrites(self) -> None:
        assert sanitize_copy("Robust and scalable") == "reliable and expandable"
        assert sanitize_copy("We leverage synergy") == "We use compatibility"
        assert sanitize_copy("High raw battery capacity") == "large advertised battery capacity"
        assert sanitize_copy("high raw capacity") == "large advertised capacity"

    def test_untouched(self) -> None:
        assert sanitize_copy("Runs a fridge for 14 hours") == "Runs a fridge for 14 hours"


class TestFinalAssessor:
    @pytest.mark.asyncio
    async def test_scores_and_narrative(
        self,
        product: Product,
        profile: dict,
        discrepancy_output: dict,
        assessment_response: dict,
    ) -> None:
        client = FakeInferenceClient([assessment_response])
        assessor = FinalAssessor(client)

        raw = await assessor.execute(
            product,
            {StageId.CLAIM_PROFILE: profile, StageId.DISCREPANCIES: discrepancy_output},
        )
        assert assessor.validate(raw).valid

        output = assessor.finalize(raw)
        assert output["base_score"] == 91
        assert output["truth_index"] == 90
        assert output["component_scores"] == {
            "claims_accuracy": 85,
            "real_world_fit": 100,
            "operational_noise": 90,
        }
        assert [bar["rating"] for bar in output["metric_bars"]] == ["High", "High", "High"]
        assert output["strengths"] == ["reliable inverter"]
        assert output["limitations"] == ["large advertised battery capacity is not all usable"]
        assert "robust" not in output["score_interpretation"]
        assert "_scoring" not in output

        call = client.calls[0]
        assert call["temperature"] == 0.1
        assert call["max_output_tokens"] == 1536
        assert "91" in call["prompt"]

    @pytest.mark.asyncio
    async def test_out_of_range_suggestion_keeps_base(
        self, product: Product, discrepancy_output: dict, assessment_response: dict
    ) -> None:
        assessment_response["truth_index"] = 60
        assessor = FinalAssessor(FakeInferenceClient([assessment_response]))

        raw = await assessor.execute(product, {StageId.DISCREPANCIES: discrepancy_output})
        assert assessor.finalize(raw)["truth_index"] == 91

    @pytest.mark.asyncio
    async def test_no_discrepancies_scores_100(
        self, product: Product, assessment_response: dict
    ) -> None:
        assessor = FinalAssessor(FakeInferenceClient([assessment_response]))
        raw = await assessor.execute(product, {StageId.DISCREPANCIES: {"entries": []}})

        output = assessor.finalize(raw)
        assert output["base_score"] == 100
        assert output["truth_index"] == 100

    @pytest.mark.asyncio
    async def test_missing_fields_fail_validation(
        self, product: Product, discrepancy_output: dict
    ) -> None:
        assessor = FinalAssessor(FakeInferenceClient([{"truth_index": 88}]))
        raw = await assessor.execute(product, {StageId.DISCREPANCIES: discrepancy_output})
        assert assessor.validate(raw).reason == "missing_score_interpretation"
