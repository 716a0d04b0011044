"""Unit tests for the surface consolidator."""

import pytest

from comp_worker.application.services.surface_consolidator import (
    DensityParameters,
    apply_updates,
    consolidate,
)
from comp_worker.domain.entities import ConfidenceEvent, PatternDensity
from comp_worker.domain.enums import EventKind, ExecutionMode, SignalType


def _events(signature: str, values: list[float]) -> list[ConfidenceEvent]:
    return [
        ConfidenceEvent(pattern_signature=signature, entity_id=f"e-{i}", value=v, timestamp=float(i))
        for i, v in enumerate(values)
    ]


def _anomaly(signature: str) -> ConfidenceEvent:
    return ConfidenceEvent(
        pattern_signature=signature,
        entity_id="e-a",
        value=1.0,
        timestamp=0.0,
        kind=EventKind.ANOMALY,
        detail="boundary_hit",
    )


def test_cold_start_uses_default_prior():
    """Test a new pattern starts from the cold-start confidence."""
    result = consolidate(_events("sig", [1.0] * 10), {})

    (update,) = result.updates
    assert update.previous_confidence == 0.5
    assert update.new_confidence == pytest.approx(0.6)
    assert update.had_prior is False
    assert update.anomalous is False
    assert update.total_executions == 10
    assert update.execution_mode == ExecutionMode.FULL_TRACE


def test_ema_with_prior():
    """Test EMA revision from a known prior."""
    prior = {"sig": PatternDensity("sig", 0.9, total_executions=40)}
    result = consolidate(_events("sig", [1.0, 1.0, 1.0, 0.0]), prior)

    (update,) = result.updates
    assert update.match_ratio == 0.75
    assert update.new_confidence == pytest.approx(0.8 * 0.9 + 0.2 * 0.75)
    assert update.total_executions == 44
    assert update.execution_mode == ExecutionMode.LIGHT_TRACE


@pytest.mark.parametrize("prior_confidence", [0.0, 0.3, 0.5, 0.9, 1.0])
@pytest.mark.parametrize("values", [[1.0], [0.0], [1.0, 0.0], [1.0, 1.0, 0.0]])
def test_new_confidence_between_prior_and_ratio(prior_confidence, values):
    """Test new confidence lies between the prior and the match ratio."""
    prior = {"sig": PatternDensity("sig", prior_confidence)}
    (update,) = consolidate(_events("sig", values), prior).updates

    low, high = sorted((prior_confidence, update.match_ratio))
    assert low - 1e-12 <= update.new_confidence <= high + 1e-12


def test_anomalous_pattern_forced_to_full_trace():
    """Test a drop of more than the threshold below prior is anomalous."""
    prior = {"sig": PatternDensity("sig", 0.99, execution_mode=ExecutionMode.SILENT)}
    result = consolidate(_events("sig", [1.0, 0.0, 0.0, 0.0]), prior)

    (update,) = result.updates
    assert update.anomalous is True
    assert update.execution_mode == ExecutionMode.FULL_TRACE
    assert result.anomalous_signatures == ("sig",)
    assert result.signal.signal_value["anomalous_patterns"] == ["sig"]


def test_cold_start_is_never_anomalous():
    """Test a pattern without prior is not flagged however poorly it matched."""
    (update,) = consolidate(_events("sig", [0.0, 0.0]), {}).updates
    assert update.anomalous is False


def test_anomaly_events_counted_not_scored():
    """Test anomaly events feed the anomaly rate and not the match ratio."""
    events = _events("sig", [1.0, 1.0]) + [_anomaly("sig"), _anomaly("only-anomalies")]
    result = consolidate(events, {})

    (update,) = result.updates
    assert update.signature == "sig"
    assert update.match_ratio == 1.0
    assert update.anomaly_rate == 0.5


def test_signal_summarizes_updates():
    """Test the density signal."""
    result = consolidate(_events("a", [1.0]) + _events("b", [0.0]), {})

    assert result.signal.signal_type == SignalType.SYNAPTIC_DENSITY
    assert result.signal.signal_value["pattern_count"] == 2
    assert result.signal.confidence == pytest.approx((0.6 + 0.4) / 2)
    assert [u.signature for u in result.updates] == ["a", "b"]


def test_empty_batch_has_no_updates():
    """Test no events produce no updates and zero confidence."""
    result = consolidate([], {})

    assert result.updates == ()
    assert result.signal.confidence == 0.0


def test_custom_parameters():
    """Test decay and cold start are configurable."""
    params = DensityParameters(decay=0.5, cold_start_confidence=0.0)
    (update,) = consolidate(_events("sig", [1.0]), {}, params).updates
    assert update.new_confidence == 0.5


def test_apply_updates_round_trip():
    """Test applied updates become the next run's prior."""
    prior = {"kept": PatternDensity("kept", 0.7), "sig": PatternDensity("sig", 0.9, total_executions=5)}
    result = consolidate(_events("sig", [1.0]), prior)

    density = apply_updates(prior, result.updates)

    assert density["kept"] == prior["kept"]
    assert density["sig"].confidence == pytest.approx(0.92)
    assert density["sig"].total_executions == 6
    assert prior["sig"].confidence == 0.9
