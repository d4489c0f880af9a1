"""Tests for the RefreshScheduler sweep."""

from datetime import timedelta
from typing import Any

import pytest
from structlog.testing import capture_logs

from audit_system.config.settings import Settings
from audit_system.data_management.schemas import CanonicalSnapshot, Product, StageId
from audit_system.errors import ExecutorFailure, PersistenceError
from audit_system.executors.base_executor import StageInputs
from audit_system.services import AuditServices
from conftest import NOW, StubExecutor


class FailsForProducts(StubExecutor):
    """Stub that raises for selected product IDs only."""

    def __init__(self, stage: StageId, failing: dict[str, Exception]):
        super().__init__(stage)
        self.failing = failing

    async def execute(self, product: Product, inputs: StageInputs) -> dict[str, Any]:
        if product.product_id in self.failing:
            self.calls += 1
            raise self.failing[product.product_id]
        return await super().execute(product, inputs)


# ── Fixtures ──────────────────────────────────────────────────────────────


@pytest.fixture
def products() -> list[Product]:
    return [
        Product(product_id=f"p-{name}", slug=f"product-{name}", brand="Acme", model_name=name)
        for name in ("a", "b", "c")
    ]


def make_executors(failing: dict[StageId, dict[str, Exception]]) -> dict[StageId, FailsForProducts]:
    executors = {stage: FailsForProducts(stage, failing.get(stage, {})) for stage in StageId}
    executors[StageId.ASSESSMENT].output = {"truth_index": 77}
    return executors


def build_services(settings: Settings, failing: dict[StageId, dict[str, Exception]]) -> AuditServices:
    return AuditServices.from_components(settings, make_executors(failing), clock=lambda: NOW)


async def seed_audited(services: AuditServices, products: list[Product]) -> None:
    """Products with a done stage 1, flagged stale in order."""
    for product in products:
        await services.products.upsert(product)
        await services.orchestrator.run_stage(product.product_id, StageId.CLAIM_PROFILE)
    for product in products:
        await services.products.set_stale(product.product_id, True)


# ── Candidate Selection Tests ─────────────────────────────────────────────


class TestSelectCandidates:
    @pytest.mark.asyncio
    async def test_stale_snapshots_then_flagged_deduped(
        self, settings: Settings, products: list[Product]
    ) -> None:
        services = build_services(settings, {})
        await services.snapshots.upsert(
            CanonicalSnapshot(product_id="p-old", last_updated=NOW - timedelta(days=40))
        )
        await services.snapshots.upsert(
            CanonicalSnapshot(product_id="p-older", last_updated=NOW - timedelta(days=60))
        )
        await services.snapshots.upsert(
            CanonicalSnapshot(product_id="p-fresh", last_updated=NOW - timedelta(days=5))
        )
        await services.products.upsert(Product(product_id="p-old", slug="old"))
        await services.products.upsert(products[0])
        await services.products.set_stale("p-old", True)
        await services.products.set_stale("p-a", True)

        candidates = await services.scheduler.select_candidates(batch_size=10, stale_days=30)

        assert candidates == ["p-older", "p-old", "p-a"]

    @pytest.mark.asyncio
    async def test_batch_cap(self, settings: Settings, products: list[Product]) -> None:
        services = build_services(settings, {})
        await seed_audited(services, products)

        candidates = await services.scheduler.select_candidates(batch_size=2, stale_days=30)

        assert len(candidates) == 2


# ── Sweep Tests ───────────────────────────────────────────────────────────


class TestSweep:
    @pytest.mark.asyncio
    async def test_empty_sweep(self, services: AuditServices) -> None:
        report = await services.scheduler.sweep()

        assert report.processed == 0
        assert report.failed == 0
        assert report.results == []

    @pytest.mark.asyncio
    async def test_failure_isolated_to_one_candidate(
        self, settings: Settings, products: list[Product]
    ) -> None:
        services = build_services(
            settings,
            {StageId.DISCREPANCIES: {"p-b": ExecutorFailure("inference_timeout")}},
        )
        await seed_audited(services, products)

        report = await services.scheduler.sweep()

        assert report.processed == 3
        assert report.failed == 1
        by_id = {r.product_id: r for r in report.results}

        assert by_id["p-a"].ok
        assert by_id["p-a"].status == "refreshed (TI: 77)"
        assert by_id["p-a"].completed_stages == [2, 3, 4]
        assert by_id["p-a"].truth_index == 77

        assert not by_id["p-b"].ok
        assert by_id["p-b"].status == "s3_failed: inference_timeout"
        assert by_id["p-b"].completed_stages == [2]

        assert by_id["p-c"].ok

        assert not (await services.products.get("p-a")).is_stale
        assert (await services.products.get("p-b")).is_stale
        assert not (await services.products.get("p-c")).is_stale

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_contained(
        self, settings: Settings, products: list[Product]
    ) -> None:
        services = build_services(
            settings,
            {StageId.EVIDENCE: {"p-a": RuntimeError("boom")}},
        )
        await seed_audited(services, products)

        report = await services.scheduler.sweep()

        statuses = {r.product_id: r.status for r in report.results}
        assert statuses["p-a"] == "s2_failed: boom"
        assert statuses["p-b"].startswith("refreshed")
        assert statuses["p-c"].startswith("refreshed")

    @pytest.mark.asyncio
    async def test_persistence_error_aborts_sweep(
        self, settings: Settings, products: list[Product]
    ) -> None:
        services = build_services(
            settings,
            {StageId.EVIDENCE: {"p-a": PersistenceError("store unavailable")}},
        )
        await seed_audited(services, products)

        with pytest.raises(PersistenceError):
            await services.scheduler.sweep()

    @pytest.mark.asyncio
    async def test_missing_stage1_fails_prereq(
        self, settings: Settings, products: list[Product]
    ) -> None:
        services = build_services(settings, {})
        await services.products.upsert(products[0])
        await services.products.set_stale("p-a", True)

        report = await services.scheduler.sweep()

        assert report.results[0].status == "s3_failed: stage_1 not done"

    @pytest.mark.asyncio
    async def test_stages_are_forced(self, settings: Settings, products: list[Product]) -> None:
        executors = make_executors({})
        services = AuditServices.from_components(settings, executors, clock=lambda: NOW)
        await seed_audited(services, products[:1])
        for stage in (StageId.EVIDENCE, StageId.DISCREPANCIES, StageId.ASSESSMENT):
            await services.orchestrator.run_stage("p-a", stage)
        await services.products.set_stale("p-a", True)

        report = await services.scheduler.sweep(batch_size=5)

        assert report.results[0].ok
        assert executors[StageId.EVIDENCE].calls == 2
        assert executors[StageId.CLAIM_PROFILE].calls == 1

    @pytest.mark.asyncio
    async def test_failures_log_completed_stages(
        self, settings: Settings, products: list[Product]
    ) -> None:
        services = build_services(
            settings,
            {
                StageId.DISCREPANCIES: {"p-a": ExecutorFailure("inference_timeout")},
                StageId.ASSESSMENT: {"p-b": RuntimeError("boom")},
            },
        )
        await seed_audited(services, products[:2])

        with capture_logs() as logs:
            await services.scheduler.sweep()

        failures = {
            entry["product_id"]: entry
            for entry in logs
            if entry["event"] == "sweep_candidate_failed"
        }
        assert failures["p-a"]["completed_stages"] == [2]
        assert failures["p-a"]["log_level"] == "warning"
        assert failures["p-b"]["completed_stages"] == [2, 3]
        assert failures["p-b"]["log_level"] == "error"
