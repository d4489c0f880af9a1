"""Abstract base class for stage executors.

An executor wraps one stage's domain logic. The orchestrator drives it in
three steps:

1. execute(product, inputs) -> raw result (may call external services)
2. validate(raw) -> ValidationOutcome (pure schema checks)
3. finalize(raw) -> normalized output persisted on the StageRecord

Executors signal expected failures by raising ExecutorFailure (external call
failed or timed out) or ValidationFailure (nothing usable came back).
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from pydantic import BaseModel

from audit_system.config.logging import get_logger
from audit_system.data_management.schemas import Product, StageId


class ValidationOutcome(BaseModel):
    """Result of a stage schema check."""

    valid: bool
    reason: Optional[str] = None
    item_count: int = 0

    @classmethod
    def ok(cls, item_count: int = 0) -> "ValidationOutcome":
        return cls(valid=True, item_count=item_count)

    @classmethod
    def fail(cls, reason: str, item_count: int = 0) -> "ValidationOutcome":
        return cls(valid=False, reason=reason, item_count=item_count)


StageInputs = dict[StageId, dict[str, Any]]


class BaseStageExecutor(ABC):
    """
    Common interface for the four stage executors.

    Attributes:
        stage_id: Stage this executor computes
        name: Human-readable executor name
        logger: Loguru logger bound with executor context
    """

    stage_id: StageId

    def __init__(self, name: Optional[str] = None):
        self.name = name or type(self).__name__
        self.logger = get_logger(self.name).bind(stage=self.stage_id.value)

    @abstractmethod
    async def execute(self, product: Product, inputs: StageInputs) -> dict[str, Any]:
        """
        Compute the raw stage result.

        Args:
            product: Product being audited
            inputs: Outputs of satisfied prerequisite (or context) stages

        Returns:
            Raw result, checked by validate() before anything is persisted
        """

    def validate(self, raw: Any) -> ValidationOutcome:
        if not isinstance(raw, dict) or not raw:
            return ValidationOutcome.fail("missing_data")
        return ValidationOutcome.ok()

    def finalize(self, raw: dict[str, Any]) -> dict[str, Any]:
        """Normalized output to persist. Identity by default."""
        return raw
