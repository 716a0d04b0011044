"""Dual-path evaluation of one entity.

Path A (component evaluator) is authoritative. Path B (intent executor)
verifies it; every enabled component writes one confidence event to the
surface whatever the entity outcome.
"""

from dataclasses import dataclass

import structlog

from comp_worker.application.services.anomaly_detector import detect_anomalies, record_anomalies
from comp_worker.application.services.component_evaluator import evaluate_components
from comp_worker.application.services.confidence_surface import ConfidenceSurface
from comp_worker.application.services.intent_executor import execute_intents
from comp_worker.application.services.intent_transformer import transform_components
from comp_worker.application.services.pattern_signature import generate_signature
from comp_worker.domain.entities import (
    Component,
    DualPathMetadata,
    EntityInputs,
    EntityResult,
    RuleSet,
    Variant,
)
from comp_worker.domain.enums import AnomalyType
from comp_worker.domain.intents import ComponentIntent

logger = structlog.get_logger()

EVALUATION_ERROR_FLAG = "evaluation_error"
MISMATCH_FLAG = "dual_path_mismatch"
MALFORMED_FLAG_PREFIX = "malformed:"


@dataclass(frozen=True)
class VariantPlan:
    """Per-variant evaluation plan, built once per run."""

    variant: Variant
    components: tuple[Component, ...]
    intents: tuple[ComponentIntent | None, ...]
    signatures: tuple[str, ...]


def build_plan(variant: Variant) -> VariantPlan:
    """Transform and sign a variant's components in ordinal order."""
    components = variant.ordered_components
    return VariantPlan(
        variant=variant,
        components=components,
        intents=tuple(transform_components(components)),
        signatures=tuple(generate_signature(c) for c in components),
    )


def build_plans(rule_set: RuleSet) -> dict[str, VariantPlan]:
    """Build plans for every variant of a rule set."""
    return {v.variant_id: build_plan(v) for v in rule_set.variants}


def within_tolerance(a: float, b: float, tolerance: float) -> bool:
    """Check two payouts agree."""
    return abs(a - b) < tolerance


def malformed_flags(inputs: EntityInputs) -> tuple[str, ...]:
    """Flags naming the entity's metric fields whose values could not be parsed."""
    return tuple(f"{MALFORMED_FLAG_PREFIX}{field}" for field in inputs.malformed)


def evaluate_entity(
    plan: VariantPlan,
    inputs: EntityInputs,
    surface: ConfidenceSurface,
    tolerance: float = 0.01,
    flags: tuple[str, ...] = (),
) -> EntityResult:
    """Evaluate one entity on both paths and write surface events.

    A failed entity still writes a zero confidence event for each enabled
    component.
    """
    flags = flags + malformed_flags(inputs)
    try:
        return _evaluate(plan, inputs, surface, tolerance, flags)
    except Exception as e:
        logger.error(
            "entity_evaluation_failed",
            entity_id=inputs.entity_id,
            variant_id=plan.variant.variant_id,
            error=str(e),
            exc_info=True,
        )
        for index, component in enumerate(plan.components):
            if component.enabled:
                surface.record_confidence(plan.signatures[index], inputs.entity_id, 0.0, index)
        return EntityResult(
            entity_id=inputs.entity_id,
            variant_id=plan.variant.variant_id,
            components=(),
            total_payout=0.0,
            dual_path=DualPathMetadata(match=False, intent_total=0.0),
            metrics=inputs.metrics.to_dict(),
            flags=flags + (EVALUATION_ERROR_FLAG,),
        )


def _evaluate(
    plan: VariantPlan,
    inputs: EntityInputs,
    surface: ConfidenceSurface,
    tolerance: float,
    flags: tuple[str, ...],
) -> EntityResult:
    component_results = evaluate_components(plan.components, inputs)
    execution_results, prior_results = execute_intents(plan.intents, inputs)

    total = sum(r.payout for r in component_results)
    intent_total = sum(prior_results)

    component_matches = []
    detected: list[tuple[int, bool, list[AnomalyType]]] = []
    for index, component in enumerate(plan.components):
        result = component_results[index]
        agrees = within_tolerance(result.payout, prior_results[index], tolerance)
        component_matches.append(agrees)
        if component.enabled:
            detected.append((index, agrees, detect_anomalies(component, result, inputs)))

    # Surface writes happen only once both paths have completed
    anomalies: list[str] = []
    for index, agrees, found in detected:
        signature = plan.signatures[index]
        surface.record_confidence(signature, inputs.entity_id, 1.0 if agrees else 0.0, index)
        record_anomalies(surface, signature, index, inputs.entity_id, found)
        anomalies.extend(f"anomaly:{anomaly.value}" for anomaly in found)

    match = within_tolerance(total, intent_total, tolerance)
    entity_flags = list(flags)
    if not match:
        entity_flags.append(MISMATCH_FLAG)
    entity_flags.extend(dict.fromkeys(anomalies))

    return EntityResult(
        entity_id=inputs.entity_id,
        variant_id=plan.variant.variant_id,
        components=tuple(component_results),
        total_payout=total,
        dual_path=DualPathMetadata(
            match=match,
            intent_total=intent_total,
            component_matches=tuple(component_matches),
            traces=tuple(r.trace.to_dict() for r in execution_results if r is not None),
        ),
        metrics=inputs.metrics.to_dict(),
        flags=tuple(entity_flags),
    )
