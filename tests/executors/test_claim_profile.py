"""Tests for the stage 1 claim profile derivation."""

import pytest

from audit_system.data_management.schemas import Product
from audit_system.executors.claim_profile import (
    ClaimProfileExecutor,
    build_claim_profile,
    spec_rows,
)


def rows(profile) -> list[tuple[str, str]]:
    return [(r.label, r.value) for r in profile.claim_profile]


class TestSpecRows:
    def test_mapping(self) -> None:
        assert [(r.label, r.value) for r in spec_rows({"Capacity": "1000 Wh", "Ports": 6})] == [
            ("Capacity", "1000 Wh"),
            ("Ports", "6"),
        ]

    def test_list_with_key_spellings(self) -> None:
        specs = [
            {"name": "Capacity", "display_value": "1000 Wh"},
            {"key": "Weight", "val": "30 lbs"},
            {"title": "Warranty"},
            {"value": "orphan value"},
        ]
        assert [(r.label, r.value) for r in spec_rows(specs)] == [
            ("Capacity", "1000 Wh"),
            ("Weight", "30 lbs"),
            ("Warranty", "—"),
        ]

    def test_placeholder_values_dropped(self) -> None:
        specs = {"Capacity": "Not Specified", "Solar": "null", "Cycles": "3000"}
        assert [(r.label, r.value) for r in spec_rows(specs)] == [("Cycles", "3000")]

    def test_unsupported_shape(self) -> None:
        assert spec_rows("1000 Wh") == []


class TestBuildClaimProfile:
    def test_identity_then_specs(self, product: Product) -> None:
        assert rows(build_claim_profile(product)) == [
            ("Brand", "Acme"),
            ("Model", "X1000"),
            ("Category", "portable power station"),
            ("Capacity", "1000 Wh"),
            ("AC Output", "1500 W"),
        ]

    def test_fallback_without_specs(self) -> None:
        product = Product(product_id="p-2", slug="bare", weight_lbs=22.5, msrp_usd=499)
        assert rows(build_claim_profile(product)) == [
            ("Brand", "Unknown"),
            ("Model", "Unknown"),
            ("Category", "Unknown"),
            ("Weight", "22.5 lbs"),
            ("MSRP", "$499"),
        ]

    def test_deterministic(self, product: Product) -> None:
        assert build_claim_profile(product) == build_claim_profile(product)


class TestClaimProfileExecutor:
    @pytest.mark.asyncio
    async def test_execute_and_validate(self, product: Product) -> None:
        executor = ClaimProfileExecutor()
        raw = await executor.execute(product, {})

        assert raw["claim_profile"][0] == {"label": "Brand", "value": "Acme"}
        assert executor.validate(raw).valid
        assert executor.finalize(raw) == raw
