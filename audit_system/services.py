"""Service container wiring stores, clients and orchestration from Settings.

The HTTP and CLI entry points build one AuditServices per process. Tests
build their own with fake executors via AuditServices.from_components().
"""

from dataclasses import dataclass
from typing import Optional

from audit_system.config.settings import Settings
from audit_system.crawlers.source_fetcher import SourceFetcher
from audit_system.data_management import (
    AuditRunStore,
    ProductStore,
    SnapshotStore,
    StageRecordStore,
)
from audit_system.data_management.persistence import store_file
from audit_system.data_management.schemas import StageId
from audit_system.executors import (
    ClaimProfileExecutor,
    DiscrepancyVerifier,
    EvidenceDiscoveryExecutor,
    FinalAssessor,
)
from audit_system.executors.base_executor import BaseStageExecutor
from audit_system.llm.gemini_client import GeminiClient
from audit_system.orchestration import (
    FreshnessChecker,
    RefreshScheduler,
    StageOrchestrator,
    WorkClaimCoordinator,
)
from audit_system.sifters.evidence_corroborator import EvidenceCorroborator


@dataclass
class AuditServices:
    settings: Settings
    products: ProductStore
    stage_records: StageRecordStore
    snapshots: SnapshotStore
    runs: AuditRunStore
    orchestrator: StageOrchestrator
    worker: WorkClaimCoordinator
    scheduler: RefreshScheduler
    freshness: FreshnessChecker
    fetcher: Optional[SourceFetcher] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "AuditServices":
        """Production wiring: Gemini inference plus httpx source fetching."""
        client = GeminiClient(settings)
        fetcher = SourceFetcher(settings)
        executors: dict[StageId, BaseStageExecutor] = {
            StageId.CLAIM_PROFILE: ClaimProfileExecutor(),
            StageId.EVIDENCE: EvidenceDiscoveryExecutor(
                client,
                fetcher,
                settings,
                corroborator=EvidenceCorroborator.from_settings(settings),
            ),
            StageId.DISCREPANCIES: DiscrepancyVerifier(client),
            StageId.ASSESSMENT: FinalAssessor(client),
        }
        return cls.from_components(settings, executors, fetcher=fetcher)

    @classmethod
    def from_components(
        cls,
        settings: Settings,
        executors: dict[StageId, BaseStageExecutor],
        fetcher: Optional[SourceFetcher] = None,
        clock=None,
    ) -> "AuditServices":
        store_dir = settings.store_path
        products = ProductStore(store_file(store_dir, "products"))
        stage_records = StageRecordStore(store_file(store_dir, "stage_records"))
        snapshots = SnapshotStore(store_file(store_dir, "snapshots"))
        runs = AuditRunStore(store_file(store_dir, "runs"))

        orchestrator = StageOrchestrator(products, stage_records, snapshots, executors)
        return cls(
            settings=settings,
            products=products,
            stage_records=stage_records,
            snapshots=snapshots,
            runs=runs,
            orchestrator=orchestrator,
            worker=WorkClaimCoordinator(
                runs,
                orchestrator,
                products,
                lease_seconds=settings.claim_lease_seconds,
            ),
            scheduler=RefreshScheduler(
                orchestrator,
                products,
                snapshots,
                batch_size=settings.refresh_batch_size,
                stale_days=settings.refresh_stale_days,
                clock=clock,
            ),
            freshness=FreshnessChecker(
                products,
                snapshots,
                window_days=settings.freshness_window_days,
                clock=clock,
            ),
            fetcher=fetcher,
        )

    async def close(self) -> None:
        if self.fetcher is not None:
            await self.fetcher.close()
