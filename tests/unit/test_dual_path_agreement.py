"""Agreement tests between the component evaluator and the intent executor.

Random valid configurations are evaluated on both paths against random
inputs, including band edges, gaps and missing metrics.
"""

import random
from dataclasses import replace

import pytest

from comp_worker.application.dto.rule_set import validate_rule_set
from comp_worker.application.services.component_evaluator import evaluate_component
from comp_worker.application.services.intent_executor import execute_intent
from comp_worker.application.services.intent_transformer import transform_component
from comp_worker.domain.entities import (
    Band,
    Component,
    ConditionalPercentageConfig,
    EntityInputs,
    FlatPercentageConfig,
    GatedPercentageConfig,
    MatrixConfig,
    MetricMap,
    PercentageConfig,
    RuleSet,
    TierConfig,
    Variant,
)
from comp_worker.domain.enums import ComponentType

CONFIGS_PER_TYPE = 1000
SAMPLES_PER_CONFIG = 8


def _bands(rng: random.Random, value_range: tuple[float, float]) -> tuple[Band, ...]:
    count = rng.randint(1, 6)
    cursor = rng.uniform(-50, 50)
    bands = []
    for index in range(count):
        width = rng.choice([0.0, rng.uniform(0.5, 40)])
        unbounded = index == count - 1 and rng.random() < 0.6
        bands.append(
            Band(
                min=cursor,
                max=None if unbounded else cursor + width,
                value=round(rng.uniform(*value_range), 4),
                label=f"b{index}",
            )
        )
        cursor += width + rng.choice([0.0, 0.0, rng.uniform(0, 10)])
    if rng.random() < 0.3:
        bands[0] = replace(bands[0], min=float("-inf"))
    return tuple(bands)


def _metric_value(rng: random.Random, candidates: list[float]) -> float | None:
    roll = rng.random()
    if roll < 0.1:
        return None
    if roll < 0.5 and candidates:
        return rng.choice(candidates)
    return rng.uniform(-120, 300)


def _tier(rng):
    return TierConfig(metric="m1", tiers=_bands(rng, (0, 1000)))


def _matrix(rng):
    row_bands = _bands(rng, (0, 0))
    column_bands = _bands(rng, (0, 0))

    def grid():
        return tuple(
            tuple(round(rng.uniform(0, 2000), 2) for _ in column_bands) for _ in row_bands
        )

    keyed = rng.random() < 0.5
    return MatrixConfig(
        row_metric="m1",
        column_metric="m2",
        row_bands=row_bands,
        column_bands=column_bands,
        values=grid() if rng.random() < 0.8 else (),
        grids={"gold": grid(), "silver": grid()} if keyed else {},
        grid_attribute="tier" if keyed or rng.random() < 0.2 else None,
    )


def _percentage(rng):
    return PercentageConfig(
        metric="m1",
        rate=round(rng.uniform(0, 0.5), 4),
        min_threshold=rng.choice([None, rng.uniform(-50, 150)]),
        max_payout=rng.choice([None, rng.uniform(0, 60)]),
    )


def _conditional(rng):
    return ConditionalPercentageConfig(metric="m1", base_metric="m2", buckets=_bands(rng, (0, 0.2)))


def _gated(rng):
    return GatedPercentageConfig(gate_metric="m1", base_metric="m2", buckets=_bands(rng, (0, 0.2)))


def _flat(rng):
    return FlatPercentageConfig(metric="m1", rate=round(rng.uniform(0, 0.5), 4))


_GENERATORS = {
    ComponentType.TIER_LOOKUP: _tier,
    ComponentType.MATRIX_LOOKUP: _matrix,
    ComponentType.PERCENTAGE: _percentage,
    ComponentType.CONDITIONAL_PERCENTAGE: _conditional,
    ComponentType.PERCENTAGE_WITH_GATE: _gated,
    ComponentType.FLAT_PERCENTAGE: _flat,
}


def _candidates(config) -> tuple[list[float], list[float]]:
    if isinstance(config, TierConfig):
        return _samples_for(config.tiers), []
    if isinstance(config, MatrixConfig):
        return _samples_for(config.row_bands), _samples_for(config.column_bands)
    if isinstance(config, (ConditionalPercentageConfig, GatedPercentageConfig)):
        return _samples_for(config.buckets), []
    if isinstance(config, PercentageConfig) and config.min_threshold is not None:
        return [config.min_threshold], []
    return [], []


def _samples_for(bands: tuple[Band, ...]) -> list[float]:
    edges = [b.min for b in bands if b.min != float("-inf")]
    return edges + [b.max for b in bands if b.max is not None]


@pytest.mark.parametrize("component_type", list(_GENERATORS), ids=lambda t: t.value)
def test_paths_agree_on_random_configs(component_type):
    """Test path A payout equals path B outcome for random valid configs."""
    rng = random.Random(f"agreement-{component_type.value}")

    for n in range(CONFIGS_PER_TYPE):
        component = Component(
            component_id=f"c-{n}",
            name=f"Component {n}",
            order=1,
            component_type=component_type,
            config=_GENERATORS[component_type](rng),
        )
        validate_rule_set(
            RuleSet("rs", "rs", (Variant("v", "v", (component,)),))
        )
        intent = transform_component(component, 0)
        first_candidates, second_candidates = _candidates(component.config)

        for _ in range(SAMPLES_PER_CONFIG):
            metrics = {}
            for name, candidates in (("m1", first_candidates), ("m2", second_candidates)):
                value = _metric_value(rng, candidates)
                if value is not None:
                    metrics[name] = value
            attributes = {"tier": rng.choice(["gold", "silver", "bronze"])} if rng.random() < 0.8 else {}
            inputs = EntityInputs(entity_id="e", metrics=MetricMap(metrics), attributes=attributes)

            expected = evaluate_component(component, inputs)
            actual = execute_intent(intent, inputs)

            assert actual.trace.error is None
            assert "error" not in expected.explanation
            assert expected.payout == actual.outcome, (component.config, metrics, attributes)
