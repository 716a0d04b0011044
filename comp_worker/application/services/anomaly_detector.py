"""Per-entity anomaly detection on component results."""

from comp_worker.application.services.bands import on_band_edge
from comp_worker.application.services.confidence_surface import ConfidenceSurface
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
from comp_worker.domain.enums import AnomalyType


def required_metrics(component: Component) -> tuple[str, ...]:
    """Metric names a component reads."""
    config = component.config
    if isinstance(config, MatrixConfig):
        return (config.row_metric, config.column_metric)
    if isinstance(config, ConditionalPercentageConfig):
        return (config.metric, config.base_metric)
    if isinstance(config, GatedPercentageConfig):
        return (config.gate_metric, config.base_metric)
    if isinstance(config, (TierConfig, PercentageConfig, FlatPercentageConfig)):
        return (config.metric,)
    return ()


def _boundary_hit(component: Component, inputs: EntityInputs) -> bool:
    config = component.config
    metrics = inputs.metrics
    checks = []
    if isinstance(config, TierConfig):
        checks = [(config.metric, config.tiers)]
    elif isinstance(config, MatrixConfig):
        checks = [(config.row_metric, config.row_bands), (config.column_metric, config.column_bands)]
    elif isinstance(config, ConditionalPercentageConfig):
        checks = [(config.metric, config.buckets)]
    elif isinstance(config, GatedPercentageConfig):
        checks = [(config.gate_metric, config.buckets)]

    return any(
        metrics.has(metric) and on_band_edge(bands, metrics.value(metric))
        for metric, bands in checks
    )


def _zero_output(component: Component, result: ComponentResult, inputs: EntityInputs) -> bool:
    config = component.config
    if isinstance(config, TierConfig):
        driver = inputs.metrics.value(config.metric)
    elif isinstance(config, MatrixConfig):
        driver = inputs.metrics.value(config.row_metric)
    else:
        return False
    return driver != 0 and result.payout == 0


def detect_anomalies(
    component: Component,
    result: ComponentResult,
    inputs: EntityInputs,
) -> list[AnomalyType]:
    """Detect anomalies for one entity/component pair.

    - data_missing: a required metric is absent
    - zero_output: a lookup received a non-zero input and paid zero
    - boundary_hit: an input sits exactly on a band edge
    """
    found: list[AnomalyType] = []
    if any(not inputs.metrics.has(m) for m in required_metrics(component)):
        found.append(AnomalyType.DATA_MISSING)
    if _zero_output(component, result, inputs):
        found.append(AnomalyType.ZERO_OUTPUT)
    if _boundary_hit(component, inputs):
        found.append(AnomalyType.BOUNDARY_HIT)
    return found


def record_anomalies(
    surface: ConfidenceSurface,
    signature: str,
    component_index: int,
    entity_id: str,
    anomalies: list[AnomalyType],
) -> None:
    """Write one surface event per detected anomaly."""
    for anomaly in anomalies:
        surface.record_anomaly(signature, entity_id, anomaly, component_index)
