"""Shared fixtures: settings, a sample product, and fakes for external services."""

from datetime import datetime, timezone
from typing import Any, Optional

import pytest

from audit_system.config.settings import Settings
from audit_system.crawlers.source_fetcher import FetchedPage
from audit_system.data_management.schemas import Product, StageId
from audit_system.errors import ExecutorFailure
from audit_system.executors.base_executor import (
    BaseStageExecutor,
    StageInputs,
    ValidationOutcome,
)
from audit_system.services import AuditServices

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeInferenceClient:
    """Scripted stand-in for GeminiClient.generate_json."""

    def __init__(self, responses: Optional[list[Any]] = None):
        self.responses = list(responses or [])
        self.calls: list[dict[str, Any]] = []

    async def generate_json(
        self,
        prompt: str,
        *,
        temperature: float = 0.2,
        max_output_tokens: int = 2048,
    ) -> Any:
        self.calls.append(
            {
                "prompt": prompt,
                "temperature": temperature,
                "max_output_tokens": max_output_tokens,
            }
        )
        if not self.responses:
            raise ExecutorFailure("inference_empty", "no scripted response left")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeFetcher:
    """Serves page text from a dict; unknown URLs fail like a dead source."""

    def __init__(self, pages: dict[str, str]):
        self.pages = pages
        self.fetched: list[str] = []

    async def fetch(self, url: str) -> Optional[FetchedPage]:
        self.fetched.append(url)
        text = self.pages.get(url)
        if text is None:
            return None
        return FetchedPage(url=url, text=text)

    async def close(self) -> None:
        return None


class StubExecutor(BaseStageExecutor):
    """Executor with a fixed output and switchable failure modes."""

    def __init__(self, stage: StageId, output: Optional[dict[str, Any]] = None):
        self.stage_id = stage
        super().__init__(name=f"Stub{stage.value}")
        self.output = output or {"stage": stage.value}
        self.error: Optional[Exception] = None
        self.valid = True
        self.calls = 0
        self.last_inputs: Optional[StageInputs] = None

    async def execute(self, product: Product, inputs: StageInputs) -> dict[str, Any]:
        self.calls += 1
        self.last_inputs = inputs
        if self.error is not None:
            raise self.error
        return dict(self.output)

    def validate(self, raw: Any) -> ValidationOutcome:
        if not self.valid:
            return ValidationOutcome.fail("invalid_output")
        return ValidationOutcome.ok(1)


# ── Fixtures ──────────────────────────────────────────────────────────────


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        gemini_api_key="",
        store_path=None,
        cron_secret="s3cret",
        max_rpm=600,
    )


@pytest.fixture
def product() -> Product:
    return Product(
        product_id="p-1",
        slug="acme-x1000",
        brand="Acme",
        model_name="X1000",
        category="portable power station",
        technical_specs={"Capacity": "1000 Wh", "AC Output": "1500 W"},
        weight_lbs=30,
        msrp_usd=999,
    )


@pytest.fixture
def fake_client() -> FakeInferenceClient:
    return FakeInferenceClient()


@pytest.fixture
def stub_executors() -> dict[StageId, StubExecutor]:
    return {
        StageId.CLAIM_PROFILE: StubExecutor(StageId.CLAIM_PROFILE),
        StageId.EVIDENCE: StubExecutor(StageId.EVIDENCE),
        StageId.DISCREPANCIES: StubExecutor(StageId.DISCREPANCIES),
        StageId.ASSESSMENT: StubExecutor(StageId.ASSESSMENT, {"truth_index": 82}),
    }


@pytest.fixture
def services(settings: Settings, stub_executors: dict[StageId, StubExecutor]) -> AuditServices:
    return AuditServices.from_components(settings, stub_executors, clock=lambda: NOW)
