"""Rule set DTOs and load-time validation."""

import math

from pydantic import BaseModel, ConfigDict, Field

from comp_worker.application.services.attributes import normalize_attribute
from comp_worker.application.services.bands import validate_bands
from comp_worker.domain.entities import (
    CONFIG_TYPES,
    Band,
    Component,
    ConditionalPercentageConfig,
    FlatPercentageConfig,
    GatedPercentageConfig,
    MatrixConfig,
    PercentageConfig,
    RuleSet,
    TierConfig,
    Variant,
)
from comp_worker.domain.enums import ComponentType
from comp_worker.domain.errors import EmptyComponentListError, InvalidComponentConfigError


class BandModel(BaseModel):
    """Band as stored in rule set JSON."""

    model_config = ConfigDict(populate_by_name=True)

    min: float | None = None  # None is unbounded below
    max: float | None = None  # None is unbounded above
    value: float = Field(0.0, validation_alias="payout")
    rate: float | None = None
    label: str = ""

    def to_domain(self, use_rate: bool = False) -> Band:
        """Convert to domain band."""
        value = self.rate if use_rate and self.rate is not None else self.value
        return Band(
            min=float("-inf") if self.min is None else self.min,
            max=self.max,
            value=value,
            label=self.label,
        )


class TierConfigModel(BaseModel):
    """tier_lookup configuration."""

    metric: str
    tiers: list[BandModel]


class MatrixConfigModel(BaseModel):
    """matrix_lookup configuration."""

    model_config = ConfigDict(populate_by_name=True)

    row_metric: str = Field(alias="rowMetric")
    column_metric: str = Field(alias="columnMetric")
    row_bands: list[BandModel] = Field(alias="rowBands")
    column_bands: list[BandModel] = Field(alias="columnBands")
    values: list[list[float]] = []
    grids: dict[str, list[list[float]]] = {}
    grid_attribute: str | None = Field(None, alias="gridAttribute")


class PercentageConfigModel(BaseModel):
    """percentage configuration."""

    model_config = ConfigDict(populate_by_name=True)

    metric: str = Field(alias="appliedTo")
    rate: float
    min_threshold: float | None = Field(None, alias="minThreshold")
    max_payout: float | None = Field(None, alias="maxPayout")


class ConditionalConfigModel(BaseModel):
    """conditional_percentage configuration."""

    model_config = ConfigDict(populate_by_name=True)

    metric: str = Field(alias="conditionMetric")
    base_metric: str = Field(alias="appliedTo")
    buckets: list[BandModel] = Field(alias="conditions")


class GateConfigModel(BaseModel):
    """percentage_with_gate configuration."""

    model_config = ConfigDict(populate_by_name=True)

    gate_metric: str = Field(alias="gateMetric")
    base_metric: str = Field(alias="appliedTo")
    buckets: list[BandModel]


class FlatPercentageConfigModel(BaseModel):
    """flat_percentage configuration."""

    metric: str
    rate: float


class ComponentModel(BaseModel):
    """Component as stored in rule set JSON."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    order: int
    component_type: ComponentType = Field(alias="componentType")
    enabled: bool = True
    tier_config: TierConfigModel | None = Field(None, alias="tierConfig")
    matrix_config: MatrixConfigModel | None = Field(None, alias="matrixConfig")
    percentage_config: PercentageConfigModel | None = Field(None, alias="percentageConfig")
    conditional_config: ConditionalConfigModel | None = Field(None, alias="conditionalConfig")
    gate_config: GateConfigModel | None = Field(None, alias="gateConfig")
    flat_config: FlatPercentageConfigModel | None = Field(None, alias="flatPercentageConfig")

    def to_domain(self) -> Component:
        """Convert to domain component."""
        return Component(
            component_id=self.id,
            name=self.name,
            order=self.order,
            component_type=self.component_type,
            config=self._config(),
            enabled=self.enabled,
        )

    def _config(self):
        missing = InvalidComponentConfigError(
            f"Component {self.id} ({self.component_type.value}) has no configuration"
        )
        kind = self.component_type

        if kind == ComponentType.TIER_LOOKUP:
            if self.tier_config is None:
                raise missing
            return TierConfig(
                metric=self.tier_config.metric,
                tiers=tuple(t.to_domain() for t in self.tier_config.tiers),
            )

        if kind == ComponentType.MATRIX_LOOKUP:
            cfg = self.matrix_config
            if cfg is None:
                raise missing
            return MatrixConfig(
                row_metric=cfg.row_metric,
                column_metric=cfg.column_metric,
                row_bands=tuple(b.to_domain() for b in cfg.row_bands),
                column_bands=tuple(b.to_domain() for b in cfg.column_bands),
                values=_grid(cfg.values),
                grids={key: _grid(grid) for key, grid in cfg.grids.items()},
                grid_attribute=cfg.grid_attribute,
            )

        if kind == ComponentType.PERCENTAGE:
            cfg = self.percentage_config
            if cfg is None:
                raise missing
            return PercentageConfig(
                metric=cfg.metric,
                rate=cfg.rate,
                min_threshold=cfg.min_threshold,
                max_payout=cfg.max_payout,
            )

        if kind == ComponentType.CONDITIONAL_PERCENTAGE:
            cfg = self.conditional_config
            if cfg is None:
                raise missing
            return ConditionalPercentageConfig(
                metric=cfg.metric,
                base_metric=cfg.base_metric,
                buckets=tuple(b.to_domain(use_rate=True) for b in cfg.buckets),
            )

        if kind == ComponentType.PERCENTAGE_WITH_GATE:
            cfg = self.gate_config
            if cfg is None:
                raise missing
            return GatedPercentageConfig(
                gate_metric=cfg.gate_metric,
                base_metric=cfg.base_metric,
                buckets=tuple(b.to_domain(use_rate=True) for b in cfg.buckets),
            )

        if self.flat_config is None:
            raise missing
        return FlatPercentageConfig(metric=self.flat_config.metric, rate=self.flat_config.rate)


class VariantModel(BaseModel):
    """Variant as stored in rule set JSON."""

    model_config = ConfigDict(populate_by_name=True)

    variant_id: str = Field(alias="variantId")
    variant_name: str = Field("", alias="variantName")
    eligibility: dict[str, str] = {}
    components: list[ComponentModel]

    def to_domain(self) -> Variant:
        """Convert to domain variant."""
        return Variant(
            variant_id=self.variant_id,
            name=self.variant_name,
            components=tuple(c.to_domain() for c in self.components),
            eligibility=dict(self.eligibility),
        )


class RuleSetModel(BaseModel):
    """Rule set as stored by the rule set collaborator."""

    id: str
    name: str = ""
    variants: list[VariantModel]

    def to_domain(self) -> RuleSet:
        """Convert to domain rule set."""
        return RuleSet(
            rule_set_id=self.id,
            name=self.name,
            variants=tuple(v.to_domain() for v in self.variants),
        )


def _grid(rows: list[list[float]]) -> tuple[tuple[float, ...], ...]:
    return tuple(tuple(float(v) for v in row) for row in rows)


def parse_rule_set(data: dict) -> RuleSet:
    """Parse rule set JSON into a validated domain rule set."""
    rule_set = RuleSetModel.model_validate(data).to_domain()
    validate_rule_set(rule_set)
    return rule_set


def validate_rule_set(rule_set: RuleSet) -> None:
    """Validate a rule set before any entity is evaluated.

    Raises a ConfigurationError subclass on the first problem found.
    """
    if not rule_set.variants:
        raise EmptyComponentListError(f"Rule set {rule_set.rule_set_id} has no variants")

    for variant in rule_set.variants:
        if not variant.components:
            raise EmptyComponentListError(
                f"Variant {variant.variant_id} of rule set {rule_set.rule_set_id} has no components"
            )

        orders = [c.order for c in variant.components]
        if len(set(orders)) != len(orders):
            raise InvalidComponentConfigError(
                f"Variant {variant.variant_id} has duplicate component order values"
            )

        for component in variant.components:
            _validate_component(component)


def _validate_component(component: Component) -> None:
    context = f"Component {component.component_id}"
    expected = CONFIG_TYPES[component.component_type]
    config = component.config
    if not isinstance(config, expected):
        raise InvalidComponentConfigError(
            f"{context}: {component.component_type.value} requires {expected.__name__}"
        )

    if isinstance(config, TierConfig):
        validate_bands(config.tiers, f"{context} tiers")
        _require_finite_values(config.tiers, f"{context} tier payouts")
    elif isinstance(config, MatrixConfig):
        validate_bands(config.row_bands, f"{context} row bands")
        validate_bands(config.column_bands, f"{context} column bands")
        grid_keys = [normalize_attribute(key) for key in config.grids]
        if len(set(grid_keys)) != len(grid_keys):
            raise InvalidComponentConfigError(f"{context}: grid keys collide after normalization")
        grids = ([config.values] if config.values else []) + list(config.grids.values())
        for grid in grids:
            if len(grid) != len(config.row_bands) or any(
                len(row) != len(config.column_bands) for row in grid
            ):
                raise InvalidComponentConfigError(
                    f"{context}: grid shape does not match "
                    f"{len(config.row_bands)}x{len(config.column_bands)} bands"
                )
            if not all(math.isfinite(cell) for row in grid for cell in row):
                raise InvalidComponentConfigError(f"{context}: grid values must be finite")
    elif isinstance(config, (ConditionalPercentageConfig, GatedPercentageConfig)):
        validate_bands(config.buckets, f"{context} buckets")
        _require_finite_values(config.buckets, f"{context} bucket rates")
    elif isinstance(config, (PercentageConfig, FlatPercentageConfig)):
        if not math.isfinite(config.rate):
            raise InvalidComponentConfigError(f"{context}: rate must be finite")
        if isinstance(config, PercentageConfig):
            for name in ("min_threshold", "max_payout"):
                bound = getattr(config, name)
                if bound is not None and math.isnan(bound):
                    raise InvalidComponentConfigError(f"{context}: {name} is NaN")


def _require_finite_values(bands: tuple[Band, ...], context: str) -> None:
    for index, band in enumerate(bands):
        if not math.isfinite(band.value):
            raise InvalidComponentConfigError(f"{context}: band {index} value must be finite")
