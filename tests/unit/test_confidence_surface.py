"""Unit tests for the confidence surface."""

from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

import pytest

from comp_worker.application.services.confidence_surface import (
    ConfidenceSurface,
    mode_for_confidence,
)
from comp_worker.domain.entities import PatternDensity
from comp_worker.domain.enums import AnomalyType, EventKind, ExecutionMode
from comp_worker.domain.ports import ClockPort


@pytest.fixture
def clock():
    """Clock with a fixed monotonic reading."""
    clock = MagicMock(spec=ClockPort)
    clock.monotonic.return_value = 42.0
    return clock


@pytest.mark.parametrize(
    "confidence,mode",
    [
        (0.0, ExecutionMode.FULL_TRACE),
        (0.69, ExecutionMode.FULL_TRACE),
        (0.70, ExecutionMode.LIGHT_TRACE),
        (0.94, ExecutionMode.LIGHT_TRACE),
        (0.95, ExecutionMode.SILENT),
        (1.0, ExecutionMode.SILENT),
    ],
)
def test_mode_for_confidence(confidence, mode):
    """Test mode thresholds."""
    assert mode_for_confidence(confidence) == mode


def test_record_confidence_and_anomaly(clock):
    """Test events carry signature, kind and timestamp."""
    surface = ConfidenceSurface(clock)
    surface.record_confidence("sig", "e-1", 1.0, 0)
    surface.record_anomaly("sig", "e-1", AnomalyType.BOUNDARY_HIT, 0)

    confidence, anomaly = surface.events()
    assert confidence.kind == EventKind.CONFIDENCE
    assert confidence.timestamp == 42.0
    assert anomaly.kind == EventKind.ANOMALY
    assert anomaly.detail == "boundary_hit"
    assert surface.stats() == {
        "events_written": 2,
        "confidence_events": 1,
        "anomaly_events": 1,
        "patterns_loaded": 0,
    }


def test_prior_is_read_only(clock):
    """Test the prior density cannot be mutated through the surface."""
    prior = {"sig": PatternDensity("sig", 0.9)}
    surface = ConfidenceSurface(clock, prior)
    prior["other"] = PatternDensity("other", 0.1)

    assert surface.prior("other") is None
    with pytest.raises(TypeError):
        surface.prior_density["sig"] = PatternDensity("sig", 0.1)


def test_execution_mode_from_prior(clock):
    """Test unknown patterns run full trace and known ones follow confidence."""
    surface = ConfidenceSurface(
        clock,
        {"trusted": PatternDensity("trusted", 0.97), "learning": PatternDensity("learning", 0.8)},
    )

    assert surface.execution_mode("unknown") == ExecutionMode.FULL_TRACE
    assert surface.execution_mode("learning") == ExecutionMode.LIGHT_TRACE
    assert surface.execution_mode("trusted") == ExecutionMode.SILENT


def test_concurrent_writes_are_all_kept(clock):
    """Test no events are lost under concurrent writers."""
    surface = ConfidenceSurface(clock)

    def write(worker: int) -> None:
        for i in range(500):
            surface.record_confidence(f"sig-{worker % 3}", f"e-{worker}-{i}", 1.0, 0)

    with ThreadPoolExecutor(max_workers=8) as executor:
        list(executor.map(write, range(16)))

    assert surface.stats()["events_written"] == 16 * 500
