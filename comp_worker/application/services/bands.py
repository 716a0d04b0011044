"""Band resolution and validation."""

import math
from typing import Sequence

from comp_worker.domain.entities import Band
from comp_worker.domain.errors import ComponentEvaluationError, NonMonotonicBandsError


def resolve_band(bands: Sequence[Band], value: float) -> int:
    """Resolve the index of the band a value falls into.

    Total over finite inputs:
    - inside a half-open [min, max) band -> that band
    - below the first minimum -> first band
    - above the last band or inside a gap -> last band whose min <= value
    """
    if not bands:
        raise ComponentEvaluationError("Cannot resolve value against empty bands")

    chosen = 0
    for index, band in enumerate(bands):
        if band.contains(value):
            return index
        if band.min <= value:
            chosen = index
    return chosen


def validate_bands(bands: Sequence[Band], context: str) -> None:
    """Validate bands are non-empty, ordered by min and non-overlapping."""
    if not bands:
        raise NonMonotonicBandsError(f"{context}: no bands defined")

    for index, band in enumerate(bands):
        if math.isnan(band.min) or (band.max is not None and math.isnan(band.max)):
            raise NonMonotonicBandsError(f"{context}: band {index} has a NaN bound")
        if band.max is not None and band.max < band.min:
            raise NonMonotonicBandsError(
                f"{context}: band {index} has max {band.max} below min {band.min}"
            )
        if index == 0:
            continue

        previous = bands[index - 1]
        if band.min < previous.min:
            raise NonMonotonicBandsError(
                f"{context}: band {index} min {band.min} is below previous min {previous.min}"
            )
        if previous.max is None or previous.max > band.min:
            raise NonMonotonicBandsError(
                f"{context}: band {index - 1} overlaps band {index}"
            )


def on_band_edge(bands: Sequence[Band], value: float) -> bool:
    """Check whether a value sits exactly on a finite band edge."""
    for band in bands:
        if band.min == value or (band.max is not None and band.max == value):
            return True
    return False
