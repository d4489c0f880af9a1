"""Read-only integrity / freshness check.

Never computes a stage. A product whose snapshot has aged past the
freshness window is only flagged stale, which makes it a candidate for the
next refresh sweep.
"""

import hashlib
import json
import math
from datetime import datetime, timezone
from typing import Callable, Optional

from audit_system.data_management.product_store import ProductStore
from audit_system.data_management.schemas import CanonicalSnapshot, StageId
from audit_system.data_management.snapshot_store import SnapshotStore
from audit_system.errors import NotFoundError
from audit_system.orchestration.schemas import AuditStatus, FreshnessReport
from audit_system.utils.logging import get_structured_logger

SECONDS_PER_DAY = 86_400


def snapshot_checksum(snapshot: CanonicalSnapshot) -> str:
    """sha256 over the stage data (sorted keys) plus the ISO timestamp, 16 hex chars."""
    stages = {key: entry.model_dump(mode="json") for key, entry in snapshot.stages.items()}
    payload = json.dumps(stages, sort_keys=True) + snapshot.last_updated.isoformat()
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]


def audit_status(snapshot: CanonicalSnapshot) -> AuditStatus:
    if snapshot.has_done(StageId.ASSESSMENT):
        return "verified"
    if snapshot.done_count() > 0:
        return "partial"
    return "no_audit"


class FreshnessChecker:
    """Computes FreshnessReports and flags stale products."""

    def __init__(
        self,
        products: ProductStore,
        snapshots: SnapshotStore,
        window_days: int = 30,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._products = products
        self._snapshots = snapshots
        self._window_days = window_days
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._logger = get_structured_logger("FreshnessChecker")

    async def check(self, slug: str) -> FreshnessReport:
        """Freshness report for a product slug.

        Raises:
            NotFoundError: Unknown slug.
        """
        product = await self._products.get_by_slug(slug)
        if product is None:
            raise NotFoundError("product_not_found", f"no product with slug {slug}")

        snapshot = await self._snapshots.get(product.product_id)
        if snapshot is None:
            return FreshnessReport(slug=slug, product_id=product.product_id)

        age_seconds = (self._clock() - snapshot.last_updated).total_seconds()
        freshness_days = math.floor(age_seconds / SECONDS_PER_DAY)
        needs_refresh = freshness_days > self._window_days

        if needs_refresh:
            await self._products.set_stale(product.product_id, True)
            self._logger.info(
                "product_flagged_stale",
                product_id=product.product_id,
                freshness_days=freshness_days,
            )

        return FreshnessReport(
            slug=slug,
            product_id=product.product_id,
            checksum=snapshot_checksum(snapshot),
            last_verified_at=snapshot.last_updated,
            freshness_days=freshness_days,
            needs_refresh=needs_refresh,
            status=audit_status(snapshot),
            audit_version=f"v{snapshot.done_count()}.0",
            truth_score=snapshot.quality_score,
        )
