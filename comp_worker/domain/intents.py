"""Intent structures used by the verification path.

An intent is a domain-agnostic description of how a component turns inputs
into an outcome. Operations nest: a scalar multiply may take its rate from a
lookup, a gate branches into two further operations.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from comp_worker.domain.enums import (
    ComparisonOperator,
    IntentOperation,
    ModifierKind,
    SourceKind,
)
from comp_worker.domain.types import JsonValue

# ============================================================================
# Sources
# ============================================================================


@dataclass(frozen=True)
class IntentSource:
    """Where an input value comes from."""

    source: SourceKind
    field: str | None = None
    value: float = 0.0
    component_index: int | None = None


def metric_source(name: str) -> IntentSource:
    """Source reading a metric."""
    return IntentSource(source=SourceKind.METRIC, field=name)


def constant_source(value: float) -> IntentSource:
    """Source returning a literal."""
    return IntentSource(source=SourceKind.CONSTANT, value=value)


def attribute_source(name: str) -> IntentSource:
    """Source reading an entity attribute."""
    return IntentSource(source=SourceKind.ENTITY_ATTRIBUTE, field=name)


def prior_source(index: int) -> IntentSource:
    """Source reading the outcome of an earlier component."""
    return IntentSource(source=SourceKind.PRIOR_COMPONENT, component_index=index)


# ============================================================================
# Operations
# ============================================================================


@dataclass(frozen=True)
class Boundary:
    """Lookup boundary; ``max`` None means unbounded."""

    min: float
    max: float | None = None


@dataclass(frozen=True)
class BoundedLookup1D:
    """Map one input through ordered boundaries to an output."""

    input: IntentSource
    boundaries: tuple[Boundary, ...]
    outputs: tuple[float, ...]
    operation: IntentOperation = IntentOperation.BOUNDED_LOOKUP_1D


@dataclass(frozen=True)
class BoundedLookup2D:
    """Map a row input and a column input to a grid cell."""

    row_input: IntentSource
    column_input: IntentSource
    row_boundaries: tuple[Boundary, ...]
    column_boundaries: tuple[Boundary, ...]
    output_grid: tuple[tuple[float, ...], ...]
    operation: IntentOperation = IntentOperation.BOUNDED_LOOKUP_2D


@dataclass(frozen=True)
class ScalarMultiply:
    """input x rate, where rate is a literal or a nested operation."""

    input: IntentSource
    rate: Union[float, "Operation"]
    operation: IntentOperation = IntentOperation.SCALAR_MULTIPLY


@dataclass(frozen=True)
class Condition:
    """Binary comparison between two sources."""

    left: IntentSource
    operator: ComparisonOperator
    right: IntentSource


@dataclass(frozen=True)
class ConditionalGate:
    """Evaluate a condition and run one of two operations."""

    condition: Condition
    on_true: "Operation"
    on_false: "Operation"
    operation: IntentOperation = IntentOperation.CONDITIONAL_GATE


@dataclass(frozen=True)
class Constant:
    """Literal outcome."""

    value: float
    operation: IntentOperation = IntentOperation.CONSTANT


Operation = Union[BoundedLookup1D, BoundedLookup2D, ScalarMultiply, ConditionalGate, Constant]


@dataclass(frozen=True)
class Modifier:
    """Adjustment applied after the operation."""

    modifier: ModifierKind
    bound: float


@dataclass(frozen=True)
class Route:
    """Operation selected when the routing attribute equals ``match_value``."""

    match_value: str
    operation: Operation


@dataclass(frozen=True)
class Routing:
    """Attribute-keyed choice between operations, with a default."""

    attribute: str
    routes: tuple[Route, ...]
    default: Operation | None = None


@dataclass(frozen=True)
class ComponentIntent:
    """Declarative form of one component."""

    component_index: int
    component_id: str
    label: str
    operation: Operation
    modifiers: tuple[Modifier, ...] = ()
    required_metrics: tuple[str, ...] = ()
    routing: Routing | None = None


# ============================================================================
# Execution
# ============================================================================


@dataclass
class ExecutionTrace:
    """What the executor saw and decided for one component."""

    entity_id: str
    component_index: int
    inputs: dict[str, JsonValue] = field(default_factory=dict)
    lookup: dict[str, JsonValue] = field(default_factory=dict)
    route: dict[str, JsonValue] | None = None
    modifiers: list[dict[str, JsonValue]] = field(default_factory=list)
    final_outcome: float = 0.0
    error: str | None = None

    def to_dict(self) -> dict[str, JsonValue]:
        """Serialize trace."""
        return {
            "entity_id": self.entity_id,
            "component_index": self.component_index,
            "inputs": self.inputs,
            "lookup": self.lookup,
            "route": self.route,
            "modifiers": self.modifiers,
            "final_outcome": self.final_outcome,
            "error": self.error,
        }


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of executing one intent for one entity."""

    entity_id: str
    component_index: int
    outcome: float
    trace: ExecutionTrace
