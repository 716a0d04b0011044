"""Intent executor (path B).

Executes component intents against entity inputs. Boundary resolution uses
bisection over boundary minimums and never shares code with path A.
"""

import operator
from bisect import bisect_right
from typing import Callable, Sequence

import structlog

from comp_worker.application.services.attributes import normalize_attribute
from comp_worker.domain.entities import EntityInputs
from comp_worker.domain.enums import (
    ComparisonOperator,
    IntentOperation,
    ModifierKind,
    SourceKind,
)
from comp_worker.domain.errors import IntentExecutionError
from comp_worker.domain.intents import (
    Boundary,
    BoundedLookup1D,
    BoundedLookup2D,
    ComponentIntent,
    ConditionalGate,
    Constant,
    ExecutionResult,
    ExecutionTrace,
    IntentSource,
    Operation,
    ScalarMultiply,
)

logger = structlog.get_logger()

_COMPARISONS: dict[ComparisonOperator, Callable[[float, float], bool]] = {
    ComparisonOperator.GTE: operator.ge,
    ComparisonOperator.GT: operator.gt,
    ComparisonOperator.LTE: operator.le,
    ComparisonOperator.LT: operator.lt,
    ComparisonOperator.EQ: operator.eq,
    ComparisonOperator.NE: operator.ne,
}

_MODIFIERS: dict[ModifierKind, Callable[[float, float], float]] = {
    ModifierKind.CAP: min,
    ModifierKind.FLOOR: max,
}

_OPERATION_EXECUTORS: dict[IntentOperation, Callable] = {}


def _register_executor(op: IntentOperation, executor: Callable) -> None:
    """Register an operation executor."""
    _OPERATION_EXECUTORS[op] = executor


def resolve_boundary(boundaries: Sequence[Boundary], value: float) -> int:
    """Index of the last boundary whose min <= value, clamped to the first."""
    if not boundaries:
        raise IntentExecutionError("Cannot resolve value against empty boundaries")
    mins = [b.min for b in boundaries]
    return max(bisect_right(mins, value) - 1, 0)


class _Context:
    """Per-execution state threaded through nested operations."""

    __slots__ = ("inputs", "prior_results", "trace")

    def __init__(self, inputs: EntityInputs, prior_results: Sequence[float], trace: ExecutionTrace):
        self.inputs = inputs
        self.prior_results = prior_results
        self.trace = trace


def execute_intent(
    intent: ComponentIntent,
    inputs: EntityInputs,
    prior_results: Sequence[float] = (),
) -> ExecutionResult:
    """Execute one intent for one entity.

    ``prior_results`` holds the outcomes of earlier components, aligned to
    component position. Errors are contained and recorded on the trace.
    """
    trace = ExecutionTrace(entity_id=inputs.entity_id, component_index=intent.component_index)
    context = _Context(inputs, prior_results, trace)

    try:
        operation = _select_route(intent, context)
        outcome = _execute(operation, context)
        for modifier in intent.modifiers:
            before = outcome
            outcome = _MODIFIERS[modifier.modifier](outcome, modifier.bound)
            trace.modifiers.append(
                {
                    "modifier": modifier.modifier.value,
                    "bound": modifier.bound,
                    "before": before,
                    "after": outcome,
                }
            )
    except Exception as e:
        logger.warning(
            "intent_execution_failed",
            entity_id=inputs.entity_id,
            component_index=intent.component_index,
            error=str(e),
        )
        trace.error = str(e)
        outcome = 0.0

    trace.final_outcome = outcome
    return ExecutionResult(
        entity_id=inputs.entity_id,
        component_index=intent.component_index,
        outcome=outcome,
        trace=trace,
    )


def execute_intents(
    intents: Sequence[ComponentIntent | None],
    inputs: EntityInputs,
) -> tuple[list[ExecutionResult | None], list[float]]:
    """Execute intents in position order.

    Returns the per-position results (None for disabled components) and the
    accumulated ``prior_results`` list, where disabled positions hold 0.
    """
    results: list[ExecutionResult | None] = []
    prior_results: list[float] = []
    for intent in intents:
        if intent is None:
            results.append(None)
            prior_results.append(0.0)
            continue
        result = execute_intent(intent, inputs, prior_results)
        results.append(result)
        prior_results.append(result.outcome)
    return results, prior_results


def _select_route(intent: ComponentIntent, context: _Context) -> Operation:
    routing = intent.routing
    if routing is None:
        return intent.operation

    value = context.inputs.attributes.get(routing.attribute)
    key = None if value is None else normalize_attribute(value)
    for route in routing.routes:
        if key is not None and normalize_attribute(route.match_value) == key:
            context.trace.route = {"attribute": routing.attribute, "value": key, "matched": True}
            return route.operation

    context.trace.route = {"attribute": routing.attribute, "value": key, "matched": False}
    return routing.default if routing.default is not None else intent.operation


def _resolve_source(source: IntentSource, context: _Context) -> float:
    if source.source == SourceKind.CONSTANT:
        return source.value

    if source.source == SourceKind.METRIC:
        value = context.inputs.metrics.value(source.field)
        context.trace.inputs[source.field] = value
        return value

    if source.source == SourceKind.ENTITY_ATTRIBUTE:
        raw = context.inputs.attributes.get(source.field)
        try:
            value = float(raw) if raw is not None else 0.0
        except (TypeError, ValueError):
            raise IntentExecutionError(f"Attribute {source.field} is not numeric: {raw!r}")
        context.trace.inputs[f"attribute:{source.field}"] = value
        return value

    if source.source == SourceKind.PRIOR_COMPONENT:
        index = source.component_index
        if index is None or index >= len(context.prior_results):
            raise IntentExecutionError(f"Prior component {index} has not been evaluated")
        value = context.prior_results[index]
        context.trace.inputs[f"prior:{index}"] = value
        return value

    raise IntentExecutionError(f"Unknown source: {source.source}")


def _execute(operation: Operation, context: _Context) -> float:
    executor = _OPERATION_EXECUTORS.get(operation.operation)
    if executor is None:
        raise IntentExecutionError(f"Unknown operation: {operation.operation}")
    return executor(operation, context)


def _execute_lookup_1d(op: BoundedLookup1D, context: _Context) -> float:
    value = _resolve_source(op.input, context)
    index = resolve_boundary(op.boundaries, value)
    output = op.outputs[index]
    context.trace.lookup["boundary_index"] = index
    context.trace.lookup["output"] = output
    return output


_register_executor(IntentOperation.BOUNDED_LOOKUP_1D, _execute_lookup_1d)


def _execute_lookup_2d(op: BoundedLookup2D, context: _Context) -> float:
    row = resolve_boundary(op.row_boundaries, _resolve_source(op.row_input, context))
    column = resolve_boundary(op.column_boundaries, _resolve_source(op.column_input, context))
    output = op.output_grid[row][column]
    context.trace.lookup["row_index"] = row
    context.trace.lookup["column_index"] = column
    context.trace.lookup["output"] = output
    return output


_register_executor(IntentOperation.BOUNDED_LOOKUP_2D, _execute_lookup_2d)


def _execute_scalar_multiply(op: ScalarMultiply, context: _Context) -> float:
    value = _resolve_source(op.input, context)
    rate = op.rate if isinstance(op.rate, (int, float)) else _execute(op.rate, context)
    context.trace.lookup["rate"] = rate
    return value * rate


_register_executor(IntentOperation.SCALAR_MULTIPLY, _execute_scalar_multiply)


def _execute_gate(op: ConditionalGate, context: _Context) -> float:
    left = _resolve_source(op.condition.left, context)
    right = _resolve_source(op.condition.right, context)
    passed = _COMPARISONS[op.condition.operator](left, right)
    context.trace.lookup.setdefault("gates", []).append(
        {"operator": op.condition.operator.value, "left": left, "right": right, "passed": passed}
    )
    return _execute(op.on_true if passed else op.on_false, context)


_register_executor(IntentOperation.CONDITIONAL_GATE, _execute_gate)


def _execute_constant(op: Constant, context: _Context) -> float:
    return op.value


_register_executor(IntentOperation.CONSTANT, _execute_constant)
