"""Pattern signature generator.

A signature identifies the computational shape of a component: a readable
structural prefix followed by a digest of the canonical configuration. It
never depends on component id, name, order, entity or metric values.
"""

import hashlib
import json
from dataclasses import asdict

from comp_worker.domain.entities import (
    Component,
    ConditionalPercentageConfig,
    FlatPercentageConfig,
    GatedPercentageConfig,
    MatrixConfig,
    PercentageConfig,
    TierConfig,
)
from comp_worker.domain.types import JsonValue

_DIGEST_LENGTH = 16


def _strip_labels(value: JsonValue) -> JsonValue:
    if isinstance(value, dict):
        return {k: _strip_labels(v) for k, v in value.items() if k != "label"}
    if isinstance(value, (list, tuple)):
        return [_strip_labels(v) for v in value]
    return value


def canonical_config(component: Component) -> str:
    """Canonical JSON of component type and configuration."""
    payload = {
        "type": component.component_type.value,
        "config": _strip_labels(asdict(component.config)),
    }
    return json.dumps(payload, sort_keys=True, separators=(",", ":"))


def structural_prefix(component: Component) -> str:
    """Human-readable shape of the component's intent."""
    config = component.config
    if isinstance(config, TierConfig):
        return f"bounded_lookup_1d:metric:b{len(config.tiers)}"
    if isinstance(config, MatrixConfig):
        prefix = f"bounded_lookup_2d:metric:metric:r{len(config.row_bands)}c{len(config.column_bands)}"
        if config.grid_attribute is not None and config.grids:
            prefix += f":routed{len(config.grids)}"
        return prefix
    if isinstance(config, PercentageConfig):
        prefix = "scalar_multiply:metric:constant"
        if config.min_threshold is not None:
            prefix = f"conditional_gate:{prefix}"
        if config.max_payout is not None:
            prefix += ":cap"
        return prefix
    if isinstance(config, ConditionalPercentageConfig):
        return f"scalar_multiply:metric:bounded_lookup_1d:b{len(config.buckets)}"
    if isinstance(config, GatedPercentageConfig):
        return f"conditional_gate:metric:b{len(config.buckets)}"
    if isinstance(config, FlatPercentageConfig):
        return "scalar_multiply:metric:constant"
    return component.component_type.value


def generate_signature(component: Component) -> str:
    """Deterministic signature for a component's type and configuration."""
    digest = hashlib.sha256(canonical_config(component).encode("utf-8")).hexdigest()
    return f"{structural_prefix(component)}#{digest[:_DIGEST_LENGTH]}"
