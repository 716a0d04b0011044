"""Unit tests for clock."""

from datetime import datetime

from comp_worker.infrastructure.runtime.clock import SystemClock


def test_now():
    """Test getting current time."""
    clock = SystemClock()
    now = clock.now()

    assert isinstance(now, datetime)
    assert now.tzinfo is not None


def test_monotonic_never_goes_back():
    """Test monotonic readings are non-decreasing."""
    clock = SystemClock()
    first = clock.monotonic()
    second = clock.monotonic()

    assert second >= first
