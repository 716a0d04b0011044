"""Domain entities."""

from __future__ import annotations

import math
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Union

from comp_worker.domain.enums import (
    ComponentType,
    EventKind,
    ExecutionMode,
    LifecycleState,
    SignalType,
)
from comp_worker.domain.errors import InvalidLifecycleTransitionError
from comp_worker.domain.types import (
    AttributeValue,
    ComponentTotalDict,
    Explanation,
    Grid,
    JsonValue,
    OutlierDict,
    Timestamp,
    VariantGroupDict,
)

# ============================================================================
# Rule set configuration
# ============================================================================


@dataclass(frozen=True)
class Band:
    """Half-open band [min, max); max None is unbounded.

    ``value`` is the payout for tier bands and the rate for rate buckets.
    """

    min: float
    max: float | None = None
    value: float = 0.0
    label: str = ""

    def contains(self, x: float) -> bool:
        """Check half-open membership."""
        return x >= self.min and (self.max is None or x < self.max)


@dataclass(frozen=True)
class TierConfig:
    """tier_lookup configuration."""

    metric: str
    tiers: tuple[Band, ...]


@dataclass(frozen=True)
class MatrixConfig:
    """matrix_lookup configuration.

    ``grids`` holds alternative grids keyed by the value of ``grid_attribute``
    on the entity (e.g. certification status); ``values`` is the default grid.
    """

    row_metric: str
    column_metric: str
    row_bands: tuple[Band, ...]
    column_bands: tuple[Band, ...]
    values: Grid = ()
    grids: dict[str, Grid] = field(default_factory=dict)
    grid_attribute: str | None = None


@dataclass(frozen=True)
class PercentageConfig:
    """percentage configuration."""

    metric: str
    rate: float
    min_threshold: float | None = None
    max_payout: float | None = None


@dataclass(frozen=True)
class ConditionalPercentageConfig:
    """conditional_percentage configuration: bucket on metric, rate applied to base."""

    metric: str
    base_metric: str
    buckets: tuple[Band, ...]


@dataclass(frozen=True)
class GatedPercentageConfig:
    """percentage_with_gate configuration: rate picked by gate, applied to base."""

    gate_metric: str
    base_metric: str
    buckets: tuple[Band, ...]


@dataclass(frozen=True)
class FlatPercentageConfig:
    """flat_percentage configuration."""

    metric: str
    rate: float


ComponentConfig = Union[
    TierConfig,
    MatrixConfig,
    PercentageConfig,
    ConditionalPercentageConfig,
    GatedPercentageConfig,
    FlatPercentageConfig,
]

CONFIG_TYPES: dict[ComponentType, type] = {
    ComponentType.TIER_LOOKUP: TierConfig,
    ComponentType.MATRIX_LOOKUP: MatrixConfig,
    ComponentType.PERCENTAGE: PercentageConfig,
    ComponentType.CONDITIONAL_PERCENTAGE: ConditionalPercentageConfig,
    ComponentType.PERCENTAGE_WITH_GATE: GatedPercentageConfig,
    ComponentType.FLAT_PERCENTAGE: FlatPercentageConfig,
}


@dataclass(frozen=True)
class Component:
    """One scored element of a plan."""

    component_id: str
    name: str
    order: int
    component_type: ComponentType
    config: ComponentConfig
    enabled: bool = True


@dataclass(frozen=True)
class Variant:
    """Population-scoped list of components."""

    variant_id: str
    name: str
    components: tuple[Component, ...]
    eligibility: dict[str, str] = field(default_factory=dict)

    @property
    def ordered_components(self) -> tuple[Component, ...]:
        """Components in evaluation order."""
        return tuple(sorted(self.components, key=lambda c: c.order))


@dataclass(frozen=True)
class RuleSet:
    """Rule set loaded for a run."""

    rule_set_id: str
    name: str
    variants: tuple[Variant, ...]

    def all_components(self) -> list[Component]:
        """All components across variants, in variant then ordinal order."""
        return [c for v in self.variants for c in v.ordered_components]


# ============================================================================
# Inputs
# ============================================================================


class MetricMap(Mapping[str, float]):
    """Immutable metric name -> value mapping for one entity."""

    __slots__ = ("_values",)

    def __init__(self, values: Mapping[str, float] | None = None) -> None:
        """Initialize metric map from finite numeric values."""
        self._values = MappingProxyType(
            {k: float(v) for k, v in (values or {}).items() if math.isfinite(float(v))}
        )

    def __getitem__(self, key: str) -> float:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"MetricMap({dict(self._values)!r})"

    def has(self, name: str) -> bool:
        """Check whether a metric was supplied."""
        return name in self._values

    def value(self, name: str) -> float:
        """Metric value, 0.0 when missing."""
        return self._values.get(name, 0.0)

    def to_dict(self) -> dict[str, float]:
        """Plain dict copy."""
        return dict(self._values)


@dataclass(frozen=True)
class EntityInputs:
    """Aggregated inputs for one entity."""

    entity_id: str
    metrics: MetricMap
    attributes: Mapping[str, AttributeValue] = field(default_factory=dict)
    malformed: tuple[str, ...] = ()


# ============================================================================
# Results
# ============================================================================


@dataclass(frozen=True)
class ComponentResult:
    """Path A result for one component."""

    component_id: str
    component_name: str
    component_type: ComponentType
    payout: float
    explanation: Explanation = field(default_factory=dict)


@dataclass(frozen=True)
class DualPathMetadata:
    """Comparison between the two execution paths for one entity."""

    match: bool
    intent_total: float
    component_matches: tuple[bool, ...] = ()
    traces: tuple[dict[str, JsonValue], ...] = ()


@dataclass(frozen=True)
class EntityResult:
    """Calculation result for one entity."""

    entity_id: str
    variant_id: str
    components: tuple[ComponentResult, ...]
    total_payout: float
    dual_path: DualPathMetadata
    metrics: dict[str, float] = field(default_factory=dict)
    flags: tuple[str, ...] = ()


# ============================================================================
# Confidence model
# ============================================================================


@dataclass(frozen=True)
class ConfidenceEvent:
    """Write event on the confidence surface."""

    pattern_signature: str
    entity_id: str
    value: float
    timestamp: float
    kind: EventKind = EventKind.CONFIDENCE
    component_index: int = 0
    detail: str | None = None


@dataclass(frozen=True)
class PatternDensity:
    """Persisted confidence for a pattern signature."""

    signature: str
    confidence: float
    total_executions: int = 0
    last_anomaly_rate: float = 0.0
    execution_mode: ExecutionMode = ExecutionMode.FULL_TRACE


DensityMap = Mapping[str, PatternDensity]


@dataclass(frozen=True)
class DensityUpdate:
    """Revised confidence for a pattern, computed at consolidation."""

    signature: str
    previous_confidence: float
    new_confidence: float
    total_executions: int
    match_ratio: float
    anomaly_rate: float
    execution_mode: ExecutionMode
    anomalous: bool = False
    had_prior: bool = True


@dataclass(frozen=True)
class TrainingSignal:
    """Run summary record for external telemetry."""

    signal_type: SignalType
    signal_value: dict[str, JsonValue]
    confidence: float


# ============================================================================
# Batch
# ============================================================================


@dataclass(frozen=True)
class BatchSummary:
    """Summary of a calculation batch."""

    total_payout: float = 0.0
    entity_count: int = 0
    component_count: int = 0
    match_count: int = 0
    mismatch_count: int = 0
    concordance_rate: float = 100.0
    failed_entity_count: int = 0
    events_written: int = 0
    density_update_count: int = 0
    anomaly_count: int = 0
    entity_anomaly_count: int = 0
    patterns_loaded: int = 0
    pattern_signatures: tuple[str, ...] = ()
    execution_modes: dict[str, str] = field(default_factory=dict)
    average_payout: float = 0.0
    median_payout: float = 0.0
    zero_payout_count: int = 0
    component_totals: tuple[ComponentTotalDict, ...] = ()
    variant_distribution: tuple[VariantGroupDict, ...] = ()
    outliers: tuple[OutlierDict, ...] = ()


# Transitions the calculation core itself may perform
_ALLOWED_TRANSITIONS: dict[LifecycleState, frozenset[LifecycleState]] = {
    LifecycleState.DRAFT: frozenset({LifecycleState.PREVIEW, LifecycleState.FAILED}),
    LifecycleState.PREVIEW: frozenset(
        {LifecycleState.DRAFT, LifecycleState.RECONCILE, LifecycleState.OFFICIAL}
    ),
    LifecycleState.RECONCILE: frozenset({LifecycleState.PREVIEW, LifecycleState.OFFICIAL}),
    LifecycleState.OFFICIAL: frozenset(
        {LifecycleState.PENDING_APPROVAL, LifecycleState.SUPERSEDED}
    ),
    LifecycleState.PENDING_APPROVAL: frozenset(
        {LifecycleState.APPROVED, LifecycleState.REJECTED}
    ),
    LifecycleState.REJECTED: frozenset({LifecycleState.OFFICIAL}),
}


@dataclass(frozen=True)
class CalculationBatch:
    """One calculation run."""

    batch_id: str
    tenant_id: str
    period_id: str
    rule_set_id: str
    lifecycle_state: LifecycleState
    entity_count: int
    created_at: Timestamp
    summary: BatchSummary | None = None
    completed_at: Timestamp | None = None
    error: str | None = None

    def transition_to(self, target: LifecycleState, **changes) -> CalculationBatch:
        """Return a copy moved to ``target``; raise if the move is not allowed."""
        allowed = _ALLOWED_TRANSITIONS.get(self.lifecycle_state, frozenset())
        if target not in allowed:
            raise InvalidLifecycleTransitionError(
                f"Cannot transition batch {self.batch_id} "
                f"from {self.lifecycle_state.value} to {target.value}"
            )
        return replace(self, lifecycle_state=target, **changes)
