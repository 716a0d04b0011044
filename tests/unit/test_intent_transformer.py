"""Unit tests for the intent transformer."""

from comp_worker.application.services.intent_transformer import (
    transform_component,
    transform_components,
)
from comp_worker.domain.entities import (
    Band,
    Component,
    ConditionalPercentageConfig,
    FlatPercentageConfig,
    GatedPercentageConfig,
    MatrixConfig,
    PercentageConfig,
    TierConfig,
)
from comp_worker.domain.enums import (
    ComparisonOperator,
    ComponentType,
    IntentOperation,
    ModifierKind,
    SourceKind,
)


def test_tier_becomes_bounded_lookup_1d():
    """Test tier_lookup maps to a 1D lookup over the metric."""
    config = TierConfig(metric="attainment", tiers=(Band(min=0, max=100, value=0), Band(min=100, value=150)))
    intent = transform_component(Component("t", "Tier", 3, ComponentType.TIER_LOOKUP, config), 0)

    assert intent.component_index == 0
    assert intent.component_id == "t"
    assert intent.label == "Tier"
    assert intent.operation.operation == IntentOperation.BOUNDED_LOOKUP_1D
    assert intent.operation.input.source == SourceKind.METRIC
    assert intent.operation.input.field == "attainment"
    assert intent.operation.outputs == (0, 150)
    assert intent.required_metrics == ("attainment",)


def test_matrix_with_keyed_grids_routes_on_attribute():
    """Test keyed grids become attribute routing with a default grid."""
    config = MatrixConfig(
        row_metric="attainment",
        column_metric="store_sales",
        row_bands=(Band(min=0),),
        column_bands=(Band(min=0),),
        values=((1.0,),),
        grids={"certified": ((2.0,),)},
        grid_attribute="certification",
    )
    intent = transform_component(Component("m", "M", 1, ComponentType.MATRIX_LOOKUP, config), 0)

    assert intent.operation.operation == IntentOperation.BOUNDED_LOOKUP_2D
    assert intent.routing.attribute == "certification"
    assert intent.routing.routes[0].match_value == "certified"
    assert intent.routing.routes[0].operation.output_grid == ((2.0,),)
    assert intent.routing.default == intent.operation


def test_matrix_without_grid_is_constant_zero():
    """Test a matrix with no grid becomes a zero constant."""
    config = MatrixConfig(
        row_metric="a",
        column_metric="b",
        row_bands=(Band(min=0),),
        column_bands=(Band(min=0),),
    )
    intent = transform_component(Component("m", "M", 1, ComponentType.MATRIX_LOOKUP, config), 0)

    assert intent.operation.operation == IntentOperation.CONSTANT
    assert intent.operation.value == 0.0
    assert intent.routing is None


def test_percentage_becomes_gate_with_cap():
    """Test percentage maps to a threshold gate plus a cap modifier."""
    config = PercentageConfig(metric="sales", rate=0.1, min_threshold=1000, max_payout=250)
    intent = transform_component(Component("p", "P", 1, ComponentType.PERCENTAGE, config), 2)

    gate = intent.operation
    assert gate.operation == IntentOperation.CONDITIONAL_GATE
    assert gate.condition.operator == ComparisonOperator.GTE
    assert gate.condition.right.value == 1000
    assert gate.on_true.operation == IntentOperation.SCALAR_MULTIPLY
    assert gate.on_false.value == 0.0
    assert intent.modifiers[0].modifier == ModifierKind.CAP
    assert intent.modifiers[0].bound == 250


def test_percentage_without_threshold_is_plain_multiply():
    """Test percentage without threshold or cap is a plain multiply."""
    config = PercentageConfig(metric="sales", rate=0.1)
    intent = transform_component(Component("p", "P", 1, ComponentType.PERCENTAGE, config), 0)

    assert intent.operation.operation == IntentOperation.SCALAR_MULTIPLY
    assert intent.modifiers == ()


def test_conditional_percentage_nests_lookup_in_rate():
    """Test conditional_percentage takes its rate from a nested 1D lookup."""
    config = ConditionalPercentageConfig(
        metric="attainment",
        base_metric="sales",
        buckets=(Band(min=0, max=100, value=0.01), Band(min=100, value=0.02)),
    )
    intent = transform_component(Component("c", "C", 1, ComponentType.CONDITIONAL_PERCENTAGE, config), 0)

    assert intent.operation.operation == IntentOperation.SCALAR_MULTIPLY
    assert intent.operation.input.field == "sales"
    assert intent.operation.rate.operation == IntentOperation.BOUNDED_LOOKUP_1D
    assert intent.operation.rate.outputs == (0.01, 0.02)


def test_gated_percentage_is_descending_gate_chain():
    """Test percentage_with_gate checks the highest bucket first."""
    config = GatedPercentageConfig(
        gate_metric="gate",
        base_metric="base",
        buckets=(
            Band(min=float("-inf"), max=90, value=0.01),
            Band(min=90, max=100, value=0.03),
            Band(min=100, value=0.05),
        ),
    )
    intent = transform_component(Component("g", "G", 1, ComponentType.PERCENTAGE_WITH_GATE, config), 0)

    outer = intent.operation
    assert outer.condition.right.value == 100
    assert outer.on_true.rate == 0.05
    inner = outer.on_false
    assert inner.condition.right.value == 90
    assert inner.on_true.rate == 0.03
    assert inner.on_false.rate == 0.01


def test_flat_percentage():
    """Test flat_percentage maps to a scalar multiply."""
    intent = transform_component(
        Component("f", "F", 1, ComponentType.FLAT_PERCENTAGE, FlatPercentageConfig("sales", 0.04)), 0
    )
    assert intent.operation.rate == 0.04


def test_disabled_component_yields_none():
    """Test disabled components produce no intent."""
    component = Component(
        "f", "F", 1, ComponentType.FLAT_PERCENTAGE, FlatPercentageConfig("sales", 0.04), enabled=False
    )
    assert transform_component(component, 0) is None


def test_transform_components_aligns_positions():
    """Test positions follow ordinal order and keep disabled slots."""
    flat = FlatPercentageConfig("sales", 0.04)
    components = [
        Component("b", "B", 2, ComponentType.FLAT_PERCENTAGE, flat),
        Component("a", "A", 1, ComponentType.FLAT_PERCENTAGE, flat, enabled=False),
    ]
    intents = transform_components(components)

    assert intents[0] is None
    assert intents[1].component_id == "b"
    assert intents[1].component_index == 1
