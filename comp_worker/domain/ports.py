"""Ports (interfaces) for infrastructure adapters."""

from abc import ABC, abstractmethod

from comp_worker.domain.entities import (
    CalculationBatch,
    DensityUpdate,
    EntityResult,
    PatternDensity,
    RuleSet,
    TrainingSignal,
)
from comp_worker.domain.types import MetricRowDict, Timestamp


class CalculationSourcePort(ABC):
    """Port for reading run inputs."""

    @abstractmethod
    async def load_rule_set(self, rule_set_id: str) -> RuleSet | None:
        """Load a rule set, or None if it does not exist."""

    @abstractmethod
    async def load_assigned_entities(
        self,
        rule_set_id: str,
        tenant_id: str,
        offset: int,
        limit: int,
    ) -> list[str]:
        """Load one page of entity ids assigned to the rule set."""

    @abstractmethod
    async def load_committed_metric_rows(
        self,
        tenant_id: str,
        period_id: str,
        offset: int,
        limit: int,
    ) -> list[MetricRowDict]:
        """Load one page of committed metric rows for the period."""

    @abstractmethod
    async def load_prior_density(self, tenant_id: str) -> dict[str, PatternDensity]:
        """Load persisted pattern density for the tenant."""


class ResultStorePort(ABC):
    """Port for writing primary results."""

    @abstractmethod
    async def create_batch(self, batch: CalculationBatch) -> None:
        """Create calculation batch record."""

    @abstractmethod
    async def persist_entity_results(
        self,
        batch: CalculationBatch,
        results: list[EntityResult],
    ) -> None:
        """Write entity results for a batch."""

    @abstractmethod
    async def persist_batch_summary(self, batch: CalculationBatch) -> None:
        """Write batch summary and lifecycle state."""


class LearningSinkPort(ABC):
    """Port for best-effort learning outputs."""

    @abstractmethod
    async def persist_density_updates(
        self,
        tenant_id: str,
        updates: list[DensityUpdate],
    ) -> None:
        """Write density updates."""

    @abstractmethod
    async def persist_training_signals(
        self,
        tenant_id: str,
        signals: list[TrainingSignal],
    ) -> None:
        """Write training signals."""


class ClockPort(ABC):
    """Port for time operations."""

    @abstractmethod
    def now(self) -> Timestamp:
        """Get current timestamp."""

    @abstractmethod
    def monotonic(self) -> float:
        """Get monotonic seconds for event ordering and durations."""
