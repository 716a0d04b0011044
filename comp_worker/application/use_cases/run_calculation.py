"""Run a calculation batch - main orchestration."""

import asyncio
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Awaitable, Callable, Sequence, TypeVar

import structlog

from comp_worker.application.dto.results import CalculationRunResult, EntityResultModel
from comp_worker.application.dto.rule_set import validate_rule_set
from comp_worker.application.services.batch_summary import build_summary
from comp_worker.application.services.confidence_surface import ConfidenceSurface
from comp_worker.application.services.dual_path import VariantPlan, build_plans, evaluate_entity
from comp_worker.application.services.metric_aggregator import (
    AggregationRules,
    aggregate_population,
)
from comp_worker.application.services.surface_consolidator import DensityParameters, consolidate
from comp_worker.application.services.variant_selector import select_variant
from comp_worker.application.use_cases.persist_learning import run as persist_learning
from comp_worker.domain.entities import (
    BatchSummary,
    CalculationBatch,
    EntityInputs,
    EntityResult,
    RuleSet,
    TrainingSignal,
)
from comp_worker.domain.enums import LifecycleState, RunState, SignalType
from comp_worker.domain.errors import ConfigurationError, PersistenceError, RuleSetNotFoundError
from comp_worker.domain.ports import (
    CalculationSourcePort,
    ClockPort,
    LearningSinkPort,
    ResultStorePort,
)
from comp_worker.domain.types import MetricRowDict
from comp_worker.infrastructure.config.settings import Settings
from comp_worker.infrastructure.observability.metrics import (
    dual_path_mismatches,
    entities_evaluated,
    run_duration_seconds,
    runs_failed,
    runs_started,
    runs_succeeded,
)

logger = structlog.get_logger()

T = TypeVar("T")

# Keeps references to learning tasks dispatched without awaiting
_background_tasks: set[asyncio.Task] = set()


async def run(
    tenant_id: str,
    period_id: str,
    rule_set_id: str,
    source: CalculationSourcePort,
    result_store: ResultStorePort,
    learning_sink: LearningSinkPort,
    clock: ClockPort,
    settings: Settings,
    batch_id: str | None = None,
    await_learning: bool = True,
) -> CalculationRunResult:
    """Run one calculation batch end to end.

    Configuration and primary persistence errors fail the run: the batch is
    marked FAILED (when it exists) and the error is re-raised. Learning
    persistence is best effort and never fails the run.
    """
    batch_id = batch_id or uuid.uuid4().hex
    started = clock.monotonic()
    state = RunState.COLLECTING_INPUTS
    batch: CalculationBatch | None = None
    runs_started.inc()

    try:
        logger.info(
            "processing_run",
            batch_id=batch_id,
            tenant_id=tenant_id,
            period_id=period_id,
            rule_set_id=rule_set_id,
        )

        rule_set = await source.load_rule_set(rule_set_id)
        if rule_set is None:
            raise RuleSetNotFoundError(f"Rule set not found: {rule_set_id}")
        validate_rule_set(rule_set)

        entity_ids = await _load_entity_ids(source, rule_set_id, tenant_id, settings.page_size)
        rows = await _load_metric_rows(source, tenant_id, period_id, settings.page_size)
        prior = await source.load_prior_density(tenant_id)
        logger.info(
            "inputs_loaded",
            batch_id=batch_id,
            entity_count=len(entity_ids),
            row_count=len(rows),
            patterns_loaded=len(prior),
        )

        draft = CalculationBatch(
            batch_id=batch_id,
            tenant_id=tenant_id,
            period_id=period_id,
            rule_set_id=rule_set_id,
            lifecycle_state=LifecycleState.DRAFT,
            entity_count=len(entity_ids),
            created_at=clock.now(),
        )
        await _write("create_batch", result_store.create_batch(draft))
        batch = draft

        state = RunState.EVALUATING
        inputs = aggregate_population(rows, entity_ids, _aggregation_rules(settings))
        plans = build_plans(rule_set)
        surface = ConfidenceSurface(
            clock,
            prior,
            full_trace_max=settings.full_trace_max,
            silent_min=settings.silent_min,
        )
        results = await _evaluate_population(
            [inputs[entity_id] for entity_id in entity_ids],
            rule_set,
            plans,
            surface,
            settings,
        )

        state = RunState.CONSOLIDATING
        consolidation = consolidate(surface.events(), surface.prior_density, _density_parameters(settings))
        signatures = _enabled_signatures(plans)
        summary = build_summary(
            results,
            component_count=len(rule_set.all_components()),
            consolidation=consolidation,
            surface_stats=surface.stats(),
            execution_modes={sig: surface.execution_mode(sig).value for sig in signatures},
        )

        await _write("persist_entity_results", result_store.persist_entity_results(batch, results))
        previewed = batch.transition_to(
            LifecycleState.PREVIEW,
            summary=summary,
            completed_at=clock.now(),
        )
        await _write("persist_batch_summary", result_store.persist_batch_summary(previewed))
        state = RunState.COMPLETE

        signals = [consolidation.signal, _concordance_signal(batch_id, summary)]
        learning = persist_learning(
            tenant_id,
            batch_id,
            consolidation.updates,
            signals,
            learning_sink,
            attempts=settings.learning_retry_attempts,
            wait_seconds=settings.learning_retry_wait_seconds,
        )
        if await_learning:
            await learning
        else:
            task = asyncio.create_task(learning)
            _background_tasks.add(task)
            task.add_done_callback(_background_tasks.discard)

        runs_succeeded.inc()
        entities_evaluated.inc(summary.entity_count)
        dual_path_mismatches.inc(summary.mismatch_count)
        run_duration_seconds.observe(clock.monotonic() - started)

        logger.info(
            "run_completed",
            batch_id=batch_id,
            state=state.value,
            entity_count=summary.entity_count,
            total_payout=summary.total_payout,
            concordance_rate=summary.concordance_rate,
            density_updates=summary.density_update_count,
            anomalies=summary.anomaly_count,
        )

        return CalculationRunResult(
            batch_id=batch_id,
            entity_count=summary.entity_count,
            total_payout=summary.total_payout,
            concordance_rate=summary.concordance_rate,
            per_entity_results=[EntityResultModel.from_domain(r) for r in results],
        )

    except Exception as e:
        error_code, error_message = _classify_error(e, state)
        failed_in, state = state, RunState.FAILED
        runs_failed.labels(error_code=error_code).inc()
        logger.error(
            "run_failed",
            batch_id=batch_id,
            state=state.value,
            failed_in=failed_in.value,
            error_code=error_code,
            error_message=error_message,
            exc_info=True,
        )
        if batch is not None and failed_in != RunState.COMPLETE:
            await _mark_failed(batch, f"{error_code}: {error_message}", result_store, clock)
        raise


# ============================================================================
# Input Loading
# ============================================================================


async def _paginate(
    fetch: Callable[[int, int], Awaitable[list[T]]],
    page_size: int,
) -> list[T]:
    """Read pages until a short page is returned."""
    items: list[T] = []
    offset = 0
    while True:
        page = await fetch(offset, page_size)
        items.extend(page)
        if len(page) < page_size:
            return items
        offset += page_size


async def _load_entity_ids(
    source: CalculationSourcePort,
    rule_set_id: str,
    tenant_id: str,
    page_size: int,
) -> list[str]:
    """Load assigned entity ids, de-duplicated with order preserved."""
    entity_ids = await _paginate(
        lambda offset, limit: source.load_assigned_entities(rule_set_id, tenant_id, offset, limit),
        page_size,
    )
    return list(dict.fromkeys(entity_ids))


async def _load_metric_rows(
    source: CalculationSourcePort,
    tenant_id: str,
    period_id: str,
    page_size: int,
) -> list[MetricRowDict]:
    """Load committed metric rows for the period."""
    return await _paginate(
        lambda offset, limit: source.load_committed_metric_rows(tenant_id, period_id, offset, limit),
        page_size,
    )


def _aggregation_rules(settings: Settings) -> AggregationRules:
    return AggregationRules(
        identity_fields=frozenset(settings.identity_fields),
        location_key_field=settings.location_key_field,
        location_metric_prefix=settings.location_metric_prefix,
    )


def _density_parameters(settings: Settings) -> DensityParameters:
    return DensityParameters(
        decay=settings.density_decay,
        cold_start_confidence=settings.cold_start_confidence,
        anomaly_threshold=settings.anomaly_threshold,
        full_trace_max=settings.full_trace_max,
        silent_min=settings.silent_min,
    )


# ============================================================================
# Evaluation
# ============================================================================


async def _evaluate_population(
    population: Sequence[EntityInputs],
    rule_set: RuleSet,
    plans: dict[str, VariantPlan],
    surface: ConfidenceSurface,
    settings: Settings,
) -> list[EntityResult]:
    """Evaluate entities in chunks on a thread pool; returns once all are done."""
    if not population:
        return []

    size = settings.entity_chunk_size
    chunks = [population[i : i + size] for i in range(0, len(population), size)]
    loop = asyncio.get_running_loop()

    with ThreadPoolExecutor(max_workers=settings.max_workers) as executor:
        chunk_results = await asyncio.gather(
            *[
                loop.run_in_executor(
                    executor,
                    _evaluate_chunk,
                    chunk,
                    rule_set,
                    plans,
                    surface,
                    settings.concordance_tolerance,
                )
                for chunk in chunks
            ]
        )

    return [result for chunk in chunk_results for result in chunk]


def _evaluate_chunk(
    chunk: Sequence[EntityInputs],
    rule_set: RuleSet,
    plans: dict[str, VariantPlan],
    surface: ConfidenceSurface,
    tolerance: float,
) -> list[EntityResult]:
    results = []
    for inputs in chunk:
        variant, flags = select_variant(rule_set.variants, inputs.attributes)
        results.append(
            evaluate_entity(plans[variant.variant_id], inputs, surface, tolerance, flags)
        )
    return results


def _enabled_signatures(plans: dict[str, VariantPlan]) -> list[str]:
    signatures: dict[str, None] = {}
    for plan in plans.values():
        for component, signature in zip(plan.components, plan.signatures):
            if component.enabled:
                signatures.setdefault(signature)
    return list(signatures)


def _concordance_signal(batch_id: str, summary: BatchSummary) -> TrainingSignal:
    return TrainingSignal(
        signal_type=SignalType.DUAL_PATH_CONCORDANCE,
        signal_value={
            "batch_id": batch_id,
            "entity_count": summary.entity_count,
            "match_count": summary.match_count,
            "mismatch_count": summary.mismatch_count,
            "concordance_rate": summary.concordance_rate,
        },
        confidence=summary.concordance_rate / 100.0,
    )


# ============================================================================
# Persistence
# ============================================================================


async def _write(operation: str, write: Awaitable[None]) -> None:
    """Await a primary write, surfacing failures as PersistenceError."""
    try:
        await write
    except PersistenceError:
        raise
    except Exception as e:
        raise PersistenceError(f"{operation} failed: {e}") from e


async def _mark_failed(
    batch: CalculationBatch,
    error: str,
    result_store: ResultStorePort,
    clock: ClockPort,
) -> None:
    """Record FAILED on the batch; a failure here is logged and the original error wins."""
    try:
        failed = batch.transition_to(LifecycleState.FAILED, error=error, completed_at=clock.now())
        await result_store.persist_batch_summary(failed)
    except Exception as e:
        logger.error(
            "batch_failure_not_recorded",
            batch_id=batch.batch_id,
            error=str(e),
            exc_info=True,
        )


# ============================================================================
# Error Handling
# ============================================================================


def _classify_error(error: Exception, state: RunState) -> tuple[str, str]:
    """Classify error and return error code and message."""
    error_message = str(error)

    if isinstance(error, ConfigurationError):
        return "CONFIGURATION_ERROR", error_message
    if isinstance(error, PersistenceError):
        return "OUTPUT_WRITE_ERROR", error_message
    if state == RunState.COLLECTING_INPUTS:
        return "INPUT_READ_ERROR", error_message

    return "INTERNAL_ERROR", error_message
