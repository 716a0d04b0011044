"""In-memory calculation store."""

from collections import defaultdict

from comp_worker.application.services.surface_consolidator import apply_updates
from comp_worker.domain.entities import (
    CalculationBatch,
    DensityUpdate,
    EntityResult,
    PatternDensity,
    RuleSet,
    TrainingSignal,
)
from comp_worker.domain.ports import CalculationSourcePort, LearningSinkPort, ResultStorePort
from comp_worker.domain.types import MetricRowDict


class InMemoryCalculationStore(CalculationSourcePort, ResultStorePort, LearningSinkPort):
    """Implements every calculation port over plain dictionaries."""

    def __init__(self) -> None:
        """Initialize empty store."""
        self.rule_sets: dict[str, RuleSet] = {}
        self.assignments: dict[tuple[str, str], list[str]] = defaultdict(list)
        self.metric_rows: dict[tuple[str, str], list[MetricRowDict]] = defaultdict(list)
        self.density: dict[str, dict[str, PatternDensity]] = defaultdict(dict)
        self.batches: dict[str, CalculationBatch] = {}
        self.entity_results: dict[str, list[EntityResult]] = {}
        self.training_signals: dict[str, list[TrainingSignal]] = defaultdict(list)

    # Seeding

    def add_rule_set(self, rule_set: RuleSet) -> None:
        """Register a rule set."""
        self.rule_sets[rule_set.rule_set_id] = rule_set

    def assign_entities(self, rule_set_id: str, tenant_id: str, entity_ids: list[str]) -> None:
        """Assign entities to a rule set."""
        self.assignments[(rule_set_id, tenant_id)].extend(entity_ids)

    def add_metric_rows(self, tenant_id: str, period_id: str, rows: list[MetricRowDict]) -> None:
        """Commit metric rows for a period."""
        self.metric_rows[(tenant_id, period_id)].extend(rows)

    # CalculationSourcePort

    async def load_rule_set(self, rule_set_id: str) -> RuleSet | None:
        """Load a rule set."""
        return self.rule_sets.get(rule_set_id)

    async def load_assigned_entities(
        self,
        rule_set_id: str,
        tenant_id: str,
        offset: int,
        limit: int,
    ) -> list[str]:
        """Load one page of assigned entity ids."""
        return list(self.assignments.get((rule_set_id, tenant_id), [])[offset : offset + limit])

    async def load_committed_metric_rows(
        self,
        tenant_id: str,
        period_id: str,
        offset: int,
        limit: int,
    ) -> list[MetricRowDict]:
        """Load one page of metric rows."""
        return list(self.metric_rows.get((tenant_id, period_id), [])[offset : offset + limit])

    async def load_prior_density(self, tenant_id: str) -> dict[str, PatternDensity]:
        """Load density for a tenant."""
        return dict(self.density.get(tenant_id, {}))

    # ResultStorePort

    async def create_batch(self, batch: CalculationBatch) -> None:
        """Create batch record."""
        self.batches[batch.batch_id] = batch

    async def persist_entity_results(
        self,
        batch: CalculationBatch,
        results: list[EntityResult],
    ) -> None:
        """Replace entity results for a batch."""
        self.entity_results[batch.batch_id] = list(results)

    async def persist_batch_summary(self, batch: CalculationBatch) -> None:
        """Store batch with its summary and lifecycle state."""
        self.batches[batch.batch_id] = batch

    # LearningSinkPort

    async def persist_density_updates(
        self,
        tenant_id: str,
        updates: list[DensityUpdate],
    ) -> None:
        """Apply density updates to the tenant's density map."""
        self.density[tenant_id] = apply_updates(self.density.get(tenant_id, {}), updates)

    async def persist_training_signals(
        self,
        tenant_id: str,
        signals: list[TrainingSignal],
    ) -> None:
        """Append training signals."""
        self.training_signals[tenant_id].extend(signals)
