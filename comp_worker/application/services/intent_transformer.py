"""Intent transformer (path B).

Turns component configurations into domain-agnostic intents built from a
small vocabulary of operations.
"""

from typing import Callable, Sequence

from comp_worker.domain.entities import (
    Band,
    Component,
    ConditionalPercentageConfig,
    FlatPercentageConfig,
    GatedPercentageConfig,
    MatrixConfig,
    PercentageConfig,
    TierConfig,
)
from comp_worker.domain.enums import ComparisonOperator, ComponentType, ModifierKind
from comp_worker.domain.errors import IntentExecutionError
from comp_worker.domain.intents import (
    Boundary,
    BoundedLookup1D,
    BoundedLookup2D,
    ComponentIntent,
    Condition,
    ConditionalGate,
    Constant,
    Modifier,
    Operation,
    Route,
    Routing,
    ScalarMultiply,
    constant_source,
    metric_source,
)
from comp_worker.domain.types import Grid

# component type -> builder returning (operation, modifiers, required metrics, routing)
_TRANSFORMERS: dict[ComponentType, Callable] = {}


def _register_transformer(component_type: ComponentType, transformer: Callable) -> None:
    """Register an intent transformer."""
    _TRANSFORMERS[component_type] = transformer


def transform_component(component: Component, component_index: int) -> ComponentIntent | None:
    """Transform one component into an intent; disabled components yield None."""
    if not component.enabled:
        return None

    transformer = _TRANSFORMERS.get(component.component_type)
    if transformer is None:
        raise IntentExecutionError(f"No transformer for {component.component_type}")

    operation, modifiers, required, routing = transformer(component.config)
    return ComponentIntent(
        component_index=component_index,
        component_id=component.component_id,
        label=component.name,
        operation=operation,
        modifiers=modifiers,
        required_metrics=required,
        routing=routing,
    )


def transform_components(components: Sequence[Component]) -> list[ComponentIntent | None]:
    """Transform components in ordinal order; positions align with path A results."""
    ordered = sorted(components, key=lambda c: c.order)
    return [transform_component(c, index) for index, c in enumerate(ordered)]


def _boundaries(bands: Sequence[Band]) -> tuple[Boundary, ...]:
    return tuple(Boundary(min=b.min, max=b.max) for b in bands)


def _lookup_1d(metric: str, bands: Sequence[Band]) -> BoundedLookup1D:
    return BoundedLookup1D(
        input=metric_source(metric),
        boundaries=_boundaries(bands),
        outputs=tuple(b.value for b in bands),
    )


def _transform_tier(config: TierConfig):
    return _lookup_1d(config.metric, config.tiers), (), (config.metric,), None


_register_transformer(ComponentType.TIER_LOOKUP, _transform_tier)


def _transform_matrix(config: MatrixConfig):
    def lookup(grid: Grid) -> BoundedLookup2D:
        return BoundedLookup2D(
            row_input=metric_source(config.row_metric),
            column_input=metric_source(config.column_metric),
            row_boundaries=_boundaries(config.row_bands),
            column_boundaries=_boundaries(config.column_bands),
            output_grid=grid,
        )

    default: Operation = lookup(config.values) if config.values else Constant(0.0)
    routing = None
    if config.grid_attribute is not None and config.grids:
        routing = Routing(
            attribute=config.grid_attribute,
            routes=tuple(Route(match_value=key, operation=lookup(grid)) for key, grid in config.grids.items()),
            default=default,
        )
    return default, (), (config.row_metric, config.column_metric), routing


_register_transformer(ComponentType.MATRIX_LOOKUP, _transform_matrix)


def _transform_percentage(config: PercentageConfig):
    operation: Operation = ScalarMultiply(input=metric_source(config.metric), rate=config.rate)
    if config.min_threshold is not None:
        operation = ConditionalGate(
            condition=Condition(
                left=metric_source(config.metric),
                operator=ComparisonOperator.GTE,
                right=constant_source(config.min_threshold),
            ),
            on_true=operation,
            on_false=Constant(0.0),
        )

    modifiers: tuple[Modifier, ...] = ()
    if config.max_payout is not None:
        modifiers = (Modifier(modifier=ModifierKind.CAP, bound=config.max_payout),)
    return operation, modifiers, (config.metric,), None


_register_transformer(ComponentType.PERCENTAGE, _transform_percentage)


def _transform_conditional(config: ConditionalPercentageConfig):
    operation = ScalarMultiply(
        input=metric_source(config.base_metric),
        rate=_lookup_1d(config.metric, config.buckets),
    )
    return operation, (), (config.metric, config.base_metric), None


_register_transformer(ComponentType.CONDITIONAL_PERCENTAGE, _transform_conditional)


def _transform_gated(config: GatedPercentageConfig):
    base = metric_source(config.base_metric)

    # Highest bucket first; the first bucket is the fallback below every other minimum
    operation: Operation = ScalarMultiply(input=base, rate=config.buckets[0].value)
    for bucket in config.buckets[1:]:
        operation = ConditionalGate(
            condition=Condition(
                left=metric_source(config.gate_metric),
                operator=ComparisonOperator.GTE,
                right=constant_source(bucket.min),
            ),
            on_true=ScalarMultiply(input=base, rate=bucket.value),
            on_false=operation,
        )
    return operation, (), (config.gate_metric, config.base_metric), None


_register_transformer(ComponentType.PERCENTAGE_WITH_GATE, _transform_gated)


def _transform_flat(config: FlatPercentageConfig):
    operation = ScalarMultiply(input=metric_source(config.metric), rate=config.rate)
    return operation, (), (config.metric,), None


_register_transformer(ComponentType.FLAT_PERCENTAGE, _transform_flat)
