"""Component evaluator (path A).

Evaluates each component type directly from its configuration. This path is
authoritative for payouts; the intent path verifies it.
"""

from typing import Callable, Sequence

import structlog

from comp_worker.application.services.attributes import normalize_attribute
from comp_worker.application.services.bands import resolve_band
from comp_worker.domain.entities import (
    Component,
    ComponentResult,
    ConditionalPercentageConfig,
    EntityInputs,
    FlatPercentageConfig,
    GatedPercentageConfig,
    MatrixConfig,
    PercentageConfig,
    TierConfig,
)
from comp_worker.domain.enums import ComponentType
from comp_worker.domain.types import Explanation, Grid

logger = structlog.get_logger()

# Strategy pattern: component type -> evaluator returning (payout, explanation)
_COMPONENT_EVALUATORS: dict[ComponentType, Callable] = {}


def _register_evaluator(component_type: ComponentType, evaluator: Callable) -> None:
    """Register a component evaluator."""
    _COMPONENT_EVALUATORS[component_type] = evaluator


def evaluate_component(
    component: Component,
    inputs: EntityInputs,
) -> ComponentResult:
    """Evaluate one component for one entity.

    Errors are contained: the payout becomes 0 and the explanation carries
    an ``error`` entry.
    """
    if not component.enabled:
        return _result(component, 0.0, {"disabled": True})

    evaluator = _COMPONENT_EVALUATORS.get(component.component_type)
    try:
        if evaluator is None:
            raise ValueError(f"Unknown component type: {component.component_type}")
        payout, explanation = evaluator(component.config, inputs)
    except Exception as e:
        logger.warning(
            "component_evaluation_failed",
            entity_id=inputs.entity_id,
            component_id=component.component_id,
            error=str(e),
        )
        return _result(component, 0.0, {"error": str(e)})

    malformed = [m for m in explanation.get("missing_metrics", ()) if m in inputs.malformed]
    if malformed:
        explanation["malformed_metrics"] = malformed
    return _result(component, payout, explanation)


def evaluate_components(
    components: Sequence[Component],
    inputs: EntityInputs,
) -> list[ComponentResult]:
    """Evaluate components in ordinal order."""
    return [
        evaluate_component(component, inputs)
        for component in sorted(components, key=lambda c: c.order)
    ]


def _result(component: Component, payout: float, explanation: Explanation) -> ComponentResult:
    return ComponentResult(
        component_id=component.component_id,
        component_name=component.name,
        component_type=component.component_type,
        payout=payout,
        explanation=explanation,
    )


def _missing(inputs: EntityInputs, *metrics: str) -> list[str]:
    return [m for m in metrics if not inputs.metrics.has(m)]


def _evaluate_tier(config: TierConfig, inputs: EntityInputs) -> tuple[float, Explanation]:
    """Evaluate tier_lookup."""
    value = inputs.metrics.value(config.metric)
    index = resolve_band(config.tiers, value)
    tier = config.tiers[index]
    return tier.value, {
        "metric": config.metric,
        "input": value,
        "tier_index": index,
        "tier_label": tier.label,
        "missing_metrics": _missing(inputs, config.metric),
    }


_register_evaluator(ComponentType.TIER_LOOKUP, _evaluate_tier)


def select_grid(config: MatrixConfig, inputs: EntityInputs) -> tuple[str | None, Grid | None]:
    """Pick the grid for an entity: keyed grid by attribute, else default values."""
    if config.grid_attribute is not None:
        value = inputs.attributes.get(config.grid_attribute)
        if value is not None:
            wanted = normalize_attribute(value)
            for key, grid in config.grids.items():
                if normalize_attribute(key) == wanted:
                    return key, grid
    if config.values:
        return None, config.values
    return None, None


def _evaluate_matrix(config: MatrixConfig, inputs: EntityInputs) -> tuple[float, Explanation]:
    """Evaluate matrix_lookup."""
    row_value = inputs.metrics.value(config.row_metric)
    column_value = inputs.metrics.value(config.column_metric)
    missing = _missing(inputs, config.row_metric, config.column_metric)

    grid_key, grid = select_grid(config, inputs)
    if grid is None:
        return 0.0, {
            "row_input": row_value,
            "column_input": column_value,
            "no_grid": True,
            "missing_metrics": missing,
        }

    row = resolve_band(config.row_bands, row_value)
    column = resolve_band(config.column_bands, column_value)
    return grid[row][column], {
        "row_input": row_value,
        "column_input": column_value,
        "row_index": row,
        "column_index": column,
        "row_label": config.row_bands[row].label,
        "column_label": config.column_bands[column].label,
        "grid_key": grid_key,
        "missing_metrics": missing,
    }


_register_evaluator(ComponentType.MATRIX_LOOKUP, _evaluate_matrix)


def _evaluate_percentage(
    config: PercentageConfig, inputs: EntityInputs
) -> tuple[float, Explanation]:
    """Evaluate percentage."""
    base = inputs.metrics.value(config.metric)
    threshold_met = config.min_threshold is None or base >= config.min_threshold
    payout = config.rate * base if threshold_met else 0.0

    capped = False
    if config.max_payout is not None and payout > config.max_payout:
        payout = config.max_payout
        capped = True

    return payout, {
        "metric": config.metric,
        "input": base,
        "rate": config.rate,
        "threshold_met": threshold_met,
        "capped": capped,
        "missing_metrics": _missing(inputs, config.metric),
    }


_register_evaluator(ComponentType.PERCENTAGE, _evaluate_percentage)


def _evaluate_conditional(
    config: ConditionalPercentageConfig, inputs: EntityInputs
) -> tuple[float, Explanation]:
    """Evaluate conditional_percentage."""
    condition_value = inputs.metrics.value(config.metric)
    base = inputs.metrics.value(config.base_metric)
    index = resolve_band(config.buckets, condition_value)
    rate = config.buckets[index].value
    return rate * base, {
        "metric": config.metric,
        "input": condition_value,
        "base_metric": config.base_metric,
        "base": base,
        "bucket_index": index,
        "rate": rate,
        "missing_metrics": _missing(inputs, config.metric, config.base_metric),
    }


_register_evaluator(ComponentType.CONDITIONAL_PERCENTAGE, _evaluate_conditional)


def _evaluate_gated(
    config: GatedPercentageConfig, inputs: EntityInputs
) -> tuple[float, Explanation]:
    """Evaluate percentage_with_gate."""
    gate_value = inputs.metrics.value(config.gate_metric)
    base = inputs.metrics.value(config.base_metric)
    index = resolve_band(config.buckets, gate_value)
    rate = config.buckets[index].value
    return rate * base, {
        "gate_metric": config.gate_metric,
        "gate_input": gate_value,
        "base_metric": config.base_metric,
        "base": base,
        "bucket_index": index,
        "rate": rate,
        "missing_metrics": _missing(inputs, config.gate_metric, config.base_metric),
    }


_register_evaluator(ComponentType.PERCENTAGE_WITH_GATE, _evaluate_gated)


def _evaluate_flat(
    config: FlatPercentageConfig, inputs: EntityInputs
) -> tuple[float, Explanation]:
    """Evaluate flat_percentage."""
    base = inputs.metrics.value(config.metric)
    return config.rate * base, {
        "metric": config.metric,
        "input": base,
        "rate": config.rate,
        "missing_metrics": _missing(inputs, config.metric),
    }


_register_evaluator(ComponentType.FLAT_PERCENTAGE, _evaluate_flat)
