"""Unit tests for rule set parsing and validation."""

import pytest
from pydantic import ValidationError

from comp_worker.application.dto.rule_set import RuleSetModel, parse_rule_set, validate_rule_set
from comp_worker.domain.entities import (
    Band,
    Component,
    FlatPercentageConfig,
    GatedPercentageConfig,
    MatrixConfig,
    RuleSet,
    TierConfig,
    Variant,
)
from comp_worker.domain.enums import ComponentType
from comp_worker.domain.errors import (
    EmptyComponentListError,
    InvalidComponentConfigError,
    NonMonotonicBandsError,
)


@pytest.fixture
def rule_set_json():
    """Rule set as delivered by the rule set collaborator."""
    return {
        "id": "rs-1",
        "name": "Retail 2025",
        "variants": [
            {
                "variantId": "certified",
                "variantName": "Certified",
                "eligibility": {"certification": "certified"},
                "components": [
                    {
                        "id": "c-tier",
                        "name": "Attainment bonus",
                        "order": 1,
                        "componentType": "tier_lookup",
                        "tierConfig": {
                            "metric": "attainment",
                            "tiers": [
                                {"min": 0, "max": 100, "payout": 0},
                                {"min": 100, "max": None, "payout": 150, "label": "At goal"},
                            ],
                        },
                    },
                    {
                        "id": "c-gate",
                        "name": "Collections",
                        "order": 2,
                        "componentType": "percentage_with_gate",
                        "gateConfig": {
                            "gateMetric": "collection_attainment",
                            "appliedTo": "collections",
                            "buckets": [
                                {"max": 100, "rate": 0.03},
                                {"min": 100, "rate": 0.05},
                            ],
                        },
                    },
                ],
            }
        ],
    }


def test_parse_rule_set(rule_set_json):
    """Test parsing camelCase rule set JSON into domain values."""
    rule_set = parse_rule_set(rule_set_json)

    assert rule_set.rule_set_id == "rs-1"
    variant = rule_set.variants[0]
    assert variant.eligibility == {"certification": "certified"}

    tier = variant.components[0]
    assert tier.component_type == ComponentType.TIER_LOOKUP
    assert tier.config.tiers[1] == Band(min=100, max=None, value=150, label="At goal")

    gate = variant.components[1].config
    assert isinstance(gate, GatedPercentageConfig)
    assert gate.buckets[0].min == float("-inf")
    assert gate.buckets[1].value == 0.05


def test_parse_rule_set_missing_config_raises(rule_set_json):
    """Test a component without its type-specific config is rejected."""
    del rule_set_json["variants"][0]["components"][0]["tierConfig"]

    with pytest.raises(InvalidComponentConfigError):
        RuleSetModel.model_validate(rule_set_json).to_domain()


def test_parse_rule_set_unknown_type_raises(rule_set_json):
    """Test unknown component types fail validation."""
    rule_set_json["variants"][0]["components"][0]["componentType"] = "lottery"

    with pytest.raises(ValidationError):
        RuleSetModel.model_validate(rule_set_json)


def test_parse_rule_set_overlapping_tiers_raises(rule_set_json):
    """Test overlapping tiers are rejected at load."""
    tiers = rule_set_json["variants"][0]["components"][0]["tierConfig"]["tiers"]
    tiers[0]["max"] = 120

    with pytest.raises(NonMonotonicBandsError):
        parse_rule_set(rule_set_json)


def _rule_set(*components: Component) -> RuleSet:
    return RuleSet(
        rule_set_id="rs",
        name="rs",
        variants=(Variant(variant_id="v", name="v", components=components),),
    )


def test_validate_rule_set_empty_components():
    """Test a variant without components is rejected."""
    with pytest.raises(EmptyComponentListError):
        validate_rule_set(_rule_set())


def test_validate_rule_set_no_variants():
    """Test a rule set without variants is rejected."""
    with pytest.raises(EmptyComponentListError):
        validate_rule_set(RuleSet(rule_set_id="rs", name="rs", variants=()))


def test_validate_rule_set_duplicate_order():
    """Test duplicate ordinals within a variant are rejected."""
    flat = FlatPercentageConfig(metric="sales", rate=0.01)
    components = (
        Component("a", "A", 1, ComponentType.FLAT_PERCENTAGE, flat),
        Component("b", "B", 1, ComponentType.FLAT_PERCENTAGE, flat),
    )
    with pytest.raises(InvalidComponentConfigError):
        validate_rule_set(_rule_set(*components))


def test_validate_rule_set_config_type_mismatch():
    """Test config type must match component type."""
    component = Component(
        "a", "A", 1, ComponentType.TIER_LOOKUP, FlatPercentageConfig(metric="sales", rate=0.01)
    )
    with pytest.raises(InvalidComponentConfigError):
        validate_rule_set(_rule_set(component))


def test_validate_rule_set_grid_shape():
    """Test matrix grid must match band counts."""
    config = MatrixConfig(
        row_metric="attainment",
        column_metric="store_sales",
        row_bands=(Band(min=0, max=100), Band(min=100)),
        column_bands=(Band(min=0, max=50), Band(min=50)),
        values=((1.0, 2.0),),
    )
    component = Component("m", "Matrix", 1, ComponentType.MATRIX_LOOKUP, config)
    with pytest.raises(InvalidComponentConfigError):
        validate_rule_set(_rule_set(component))


def test_validate_rule_set_accepts_valid():
    """Test a valid rule set passes."""
    config = TierConfig(metric="attainment", tiers=(Band(min=0, max=100), Band(min=100, value=10)))
    validate_rule_set(_rule_set(Component("t", "Tier", 1, ComponentType.TIER_LOOKUP, config)))


def test_parse_rule_set_nan_band_min_raises(rule_set_json):
    """Test a NaN tier minimum fails at load."""
    tiers = rule_set_json["variants"][0]["components"][0]["tierConfig"]["tiers"]
    tiers[1]["min"] = float("nan")

    with pytest.raises(NonMonotonicBandsError):
        parse_rule_set(rule_set_json)


def test_validate_rule_set_non_finite_tier_payout():
    """Test tier payouts must be finite."""
    config = TierConfig(
        metric="attainment", tiers=(Band(min=0, max=100), Band(min=100, value=float("inf")))
    )
    with pytest.raises(InvalidComponentConfigError):
        validate_rule_set(_rule_set(Component("t", "Tier", 1, ComponentType.TIER_LOOKUP, config)))


def test_validate_rule_set_non_finite_bucket_rate():
    """Test bucket rates must be finite."""
    config = GatedPercentageConfig(
        gate_metric="collection_attainment",
        base_metric="collections",
        buckets=(Band(min=0, max=100, value=0.03), Band(min=100, value=float("nan"))),
    )
    component = Component("g", "Gate", 1, ComponentType.PERCENTAGE_WITH_GATE, config)
    with pytest.raises(InvalidComponentConfigError):
        validate_rule_set(_rule_set(component))


def test_validate_rule_set_non_finite_grid_cell():
    """Test matrix cells must be finite."""
    config = MatrixConfig(
        row_metric="attainment",
        column_metric="store_sales",
        row_bands=(Band(min=0),),
        column_bands=(Band(min=0),),
        values=((float("nan"),),),
    )
    component = Component("m", "Matrix", 1, ComponentType.MATRIX_LOOKUP, config)
    with pytest.raises(InvalidComponentConfigError):
        validate_rule_set(_rule_set(component))


def test_validate_rule_set_colliding_grid_keys():
    """Test grid keys that normalize to the same value are rejected."""
    config = MatrixConfig(
        row_metric="attainment",
        column_metric="store_sales",
        row_bands=(Band(min=0),),
        column_bands=(Band(min=0),),
        grids={"Gold": ((1.0,),), " gold": ((2.0,),)},
        grid_attribute="certification",
    )
    component = Component("m", "Matrix", 1, ComponentType.MATRIX_LOOKUP, config)
    with pytest.raises(InvalidComponentConfigError, match="collide"):
        validate_rule_set(_rule_set(component))
