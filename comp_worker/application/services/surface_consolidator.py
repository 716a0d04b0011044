"""Surface consolidator.

Runs once per batch, after every entity has been evaluated. Groups surface
events by signature and revises each pattern's confidence with an
exponential moving average:

    new = (1 - decay) * prior + decay * match_ratio

New confidence always lies between the prior and this run's match ratio.
"""

from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

import structlog

from comp_worker.application.services.confidence_surface import mode_for_confidence
from comp_worker.domain.entities import ConfidenceEvent, DensityUpdate, PatternDensity, TrainingSignal
from comp_worker.domain.enums import EventKind, ExecutionMode, SignalType

logger = structlog.get_logger()


@dataclass(frozen=True)
class DensityParameters:
    """Constants of the density model."""

    decay: float = 0.2
    cold_start_confidence: float = 0.5
    anomaly_threshold: float = 0.2
    full_trace_max: float = 0.70
    silent_min: float = 0.95


@dataclass(frozen=True)
class ConsolidationResult:
    """Density updates and the training signal for one consolidation."""

    updates: tuple[DensityUpdate, ...]
    signal: TrainingSignal

    @property
    def anomalous_signatures(self) -> tuple[str, ...]:
        """Signatures flagged anomalous in this consolidation."""
        return tuple(u.signature for u in self.updates if u.anomalous)


def consolidate(
    events: Iterable[ConfidenceEvent],
    prior: Mapping[str, PatternDensity],
    params: DensityParameters = DensityParameters(),
) -> ConsolidationResult:
    """Turn a batch's surface events into density updates."""
    confidence: dict[str, list[float]] = defaultdict(list)
    anomalies: dict[str, int] = defaultdict(int)
    for event in events:
        if event.kind == EventKind.ANOMALY:
            anomalies[event.pattern_signature] += 1
        else:
            confidence[event.pattern_signature].append(event.value)

    updates: list[DensityUpdate] = []
    for signature in sorted(set(confidence) | set(anomalies)):
        values = confidence.get(signature, [])
        if not values:
            # Anomalies without confidence events carry no match information
            continue
        updates.append(_update(signature, values, anomalies.get(signature, 0), prior.get(signature), params))

    for update in updates:
        if update.anomalous:
            logger.warning(
                "pattern_anomaly_detected",
                signature=update.signature,
                previous_confidence=update.previous_confidence,
                match_ratio=update.match_ratio,
            )

    return ConsolidationResult(updates=tuple(updates), signal=_density_signal(updates))


def _update(
    signature: str,
    values: list[float],
    anomaly_count: int,
    prior: PatternDensity | None,
    params: DensityParameters,
) -> DensityUpdate:
    match_ratio = sum(values) / len(values)
    had_prior = prior is not None
    previous = prior.confidence if had_prior else params.cold_start_confidence
    new_confidence = (1 - params.decay) * previous + params.decay * match_ratio

    anomalous = had_prior and previous - match_ratio > params.anomaly_threshold
    mode = (
        ExecutionMode.FULL_TRACE
        if anomalous
        else mode_for_confidence(new_confidence, params.full_trace_max, params.silent_min)
    )
    return DensityUpdate(
        signature=signature,
        previous_confidence=previous,
        new_confidence=new_confidence,
        total_executions=(prior.total_executions if had_prior else 0) + len(values),
        match_ratio=match_ratio,
        anomaly_rate=anomaly_count / len(values),
        execution_mode=mode,
        anomalous=anomalous,
        had_prior=had_prior,
    )


def _density_signal(updates: list[DensityUpdate]) -> TrainingSignal:
    average = sum(u.new_confidence for u in updates) / len(updates) if updates else 0.0
    return TrainingSignal(
        signal_type=SignalType.SYNAPTIC_DENSITY,
        signal_value={
            "pattern_count": len(updates),
            "anomalous_patterns": [u.signature for u in updates if u.anomalous],
            "average_confidence": average,
            "modes": {u.signature: u.execution_mode.value for u in updates},
        },
        confidence=average,
    )


def apply_updates(
    prior: Mapping[str, PatternDensity],
    updates: Iterable[DensityUpdate],
) -> dict[str, PatternDensity]:
    """Density map after applying updates, as the next run would load it."""
    density = dict(prior)
    for update in updates:
        density[update.signature] = PatternDensity(
            signature=update.signature,
            confidence=update.new_confidence,
            total_executions=update.total_executions,
            last_anomaly_rate=update.anomaly_rate,
            execution_mode=update.execution_mode,
        )
    return density
