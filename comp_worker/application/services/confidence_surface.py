"""Run-scoped confidence surface.

Append-only event log shared by concurrent evaluation workers. Prior density
is read-only for the lifetime of the surface; scoring happens only in the
consolidator after the barrier.
"""

import threading
from collections.abc import Mapping
from types import MappingProxyType
from typing import TypedDict

from comp_worker.domain.entities import ConfidenceEvent, PatternDensity
from comp_worker.domain.enums import AnomalyType, EventKind, ExecutionMode
from comp_worker.domain.ports import ClockPort


class SurfaceStats(TypedDict):
    """Surface statistics."""
    events_written: int
    confidence_events: int
    anomaly_events: int
    patterns_loaded: int


def mode_for_confidence(
    confidence: float,
    full_trace_max: float = 0.70,
    silent_min: float = 0.95,
) -> ExecutionMode:
    """Map a confidence value to an advisory execution mode."""
    if confidence < full_trace_max:
        return ExecutionMode.FULL_TRACE
    if confidence < silent_min:
        return ExecutionMode.LIGHT_TRACE
    return ExecutionMode.SILENT


class ConfidenceSurface:
    """Append-only confidence event log for one batch."""

    def __init__(
        self,
        clock: ClockPort,
        prior: Mapping[str, PatternDensity] | None = None,
        full_trace_max: float = 0.70,
        silent_min: float = 0.95,
    ) -> None:
        """Initialize surface from the prior density map."""
        self._clock = clock
        self._prior = MappingProxyType(dict(prior or {}))
        self._full_trace_max = full_trace_max
        self._silent_min = silent_min
        self._events: list[ConfidenceEvent] = []
        self._lock = threading.Lock()

    @property
    def prior_density(self) -> Mapping[str, PatternDensity]:
        """Read-only prior density."""
        return self._prior

    def write(self, event: ConfidenceEvent) -> None:
        """Append an event."""
        with self._lock:
            self._events.append(event)

    def record_confidence(
        self,
        signature: str,
        entity_id: str,
        value: float,
        component_index: int,
    ) -> ConfidenceEvent:
        """Append a confidence event (1.0 match, 0.0 mismatch)."""
        event = ConfidenceEvent(
            pattern_signature=signature,
            entity_id=entity_id,
            value=value,
            timestamp=self._clock.monotonic(),
            kind=EventKind.CONFIDENCE,
            component_index=component_index,
        )
        self.write(event)
        return event

    def record_anomaly(
        self,
        signature: str,
        entity_id: str,
        anomaly_type: AnomalyType,
        component_index: int,
    ) -> ConfidenceEvent:
        """Append an anomaly event."""
        event = ConfidenceEvent(
            pattern_signature=signature,
            entity_id=entity_id,
            value=1.0,
            timestamp=self._clock.monotonic(),
            kind=EventKind.ANOMALY,
            component_index=component_index,
            detail=anomaly_type.value,
        )
        self.write(event)
        return event

    def events(self) -> tuple[ConfidenceEvent, ...]:
        """Snapshot of events written so far."""
        with self._lock:
            return tuple(self._events)

    def prior(self, signature: str) -> PatternDensity | None:
        """Prior density for a signature, if any."""
        return self._prior.get(signature)

    def execution_mode(self, signature: str) -> ExecutionMode:
        """Advisory mode from prior density; unknown patterns get full trace."""
        density = self._prior.get(signature)
        if density is None:
            return ExecutionMode.FULL_TRACE
        return mode_for_confidence(density.confidence, self._full_trace_max, self._silent_min)

    def stats(self) -> SurfaceStats:
        """Event counts and prior size."""
        events = self.events()
        anomalies = sum(1 for e in events if e.kind == EventKind.ANOMALY)
        return {
            "events_written": len(events),
            "confidence_events": len(events) - anomalies,
            "anomaly_events": anomalies,
            "patterns_loaded": len(self._prior),
        }
