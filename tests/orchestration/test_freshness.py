"""Tests for the read-only freshness / integrity check."""

from datetime import timedelta

import pytest

from audit_system.data_management.schemas import (
    CanonicalSnapshot,
    Product,
    SnapshotStageEntry,
    StageId,
)
from audit_system.errors import NotFoundError
from audit_system.orchestration.freshness import audit_status, snapshot_checksum
from audit_system.services import AuditServices
from conftest import NOW


def make_snapshot(age: timedelta, stages: tuple[StageId, ...] = tuple(StageId)) -> CanonicalSnapshot:
    updated = NOW - age
    entries = {
        stage.key: SnapshotStageEntry(completed_at=updated, data={"stage": stage.value})
        for stage in stages
    }
    return CanonicalSnapshot(
        product_id="p-1",
        stages=entries,
        is_verified=StageId.ASSESSMENT in stages,
        quality_score=82 if StageId.ASSESSMENT in stages else None,
        last_updated=updated,
    )


async def seed(services: AuditServices, product: Product, snapshot=None) -> None:
    await services.products.upsert(product)
    if snapshot is not None:
        await services.snapshots.upsert(snapshot)


# ── Helper Tests ──────────────────────────────────────────────────────────


class TestChecksum:
    def test_format_and_stability(self) -> None:
        snapshot = make_snapshot(timedelta(days=1))
        checksum = snapshot_checksum(snapshot)

        assert len(checksum) == 16
        assert all(c in "0123456789abcdef" for c in checksum)
        assert snapshot_checksum(snapshot.model_copy(deep=True)) == checksum

    def test_changes_with_data_and_timestamp(self) -> None:
        snapshot = make_snapshot(timedelta(days=1))
        changed_data = snapshot.model_copy(deep=True)
        changed_data.stages["stage_1"].data = {"stage": 99}
        changed_time = snapshot.model_copy(update={"last_updated": NOW}, deep=True)

        assert snapshot_checksum(changed_data) != snapshot_checksum(snapshot)
        assert snapshot_checksum(changed_time) != snapshot_checksum(snapshot)

    def test_audit_status(self) -> None:
        assert audit_status(make_snapshot(timedelta(0))) == "verified"
        assert audit_status(make_snapshot(timedelta(0), (StageId.CLAIM_PROFILE,))) == "partial"
        assert audit_status(make_snapshot(timedelta(0), ())) == "no_audit"


# ── Check Tests ───────────────────────────────────────────────────────────


class TestFreshnessCheck:
    @pytest.mark.asyncio
    async def test_unknown_slug(self, services: AuditServices) -> None:
        with pytest.raises(NotFoundError):
            await services.freshness.check("no-such-product")

    @pytest.mark.asyncio
    async def test_fresh_snapshot(self, services: AuditServices, product: Product) -> None:
        snapshot = make_snapshot(timedelta(days=3, hours=5))
        await seed(services, product, snapshot)

        report = await services.freshness.check("acme-x1000")

        assert report.product_id == "p-1"
        assert report.freshness_days == 3
        assert not report.needs_refresh
        assert report.status == "verified"
        assert report.audit_version == "v4.0"
        assert report.truth_score == 82
        assert report.checksum == snapshot_checksum(snapshot)
        assert report.last_verified_at == snapshot.last_updated

    @pytest.mark.asyncio
    async def test_window_boundary_not_stale(
        self, services: AuditServices, product: Product
    ) -> None:
        await seed(services, product, make_snapshot(timedelta(days=30, hours=23)))

        report = await services.freshness.check("acme-x1000")

        assert report.freshness_days == 30
        assert not report.needs_refresh
        assert not (await services.products.get("p-1")).is_stale

    @pytest.mark.asyncio
    async def test_past_window_flags_stale(
        self, services: AuditServices, product: Product
    ) -> None:
        await seed(services, product, make_snapshot(timedelta(days=31)))

        report = await services.freshness.check("acme-x1000")

        assert report.freshness_days == 31
        assert report.needs_refresh
        assert (await services.products.get("p-1")).is_stale

    @pytest.mark.asyncio
    async def test_check_does_not_run_stages(
        self, services: AuditServices, product: Product, stub_executors
    ) -> None:
        await seed(services, product, make_snapshot(timedelta(days=45)))

        await services.freshness.check("acme-x1000")

        assert all(executor.calls == 0 for executor in stub_executors.values())
        assert await services.stage_records.get_all("p-1") == {}

    @pytest.mark.asyncio
    async def test_partial_audit_version(
        self, services: AuditServices, product: Product
    ) -> None:
        stages = (StageId.CLAIM_PROFILE, StageId.EVIDENCE)
        await seed(services, product, make_snapshot(timedelta(days=1), stages))

        report = await services.freshness.check("acme-x1000")

        assert report.status == "partial"
        assert report.audit_version == "v2.0"
        assert report.truth_score is None

    @pytest.mark.asyncio
    async def test_no_snapshot(self, services: AuditServices, product: Product) -> None:
        await seed(services, product)

        report = await services.freshness.check("acme-x1000")

        assert report.status == "no_audit"
        assert report.needs_refresh
        assert report.checksum is None
        assert report.freshness_days is None
        assert not (await services.products.get("p-1")).is_stale

        body = report.to_response()
        assert body["ok"] is True
        assert body["needsRefresh"] is True
        assert body["lastVerifiedAt"] is None
