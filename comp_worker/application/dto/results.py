"""Calculation result DTOs."""

from pydantic import BaseModel, ConfigDict, Field

from comp_worker.domain.entities import ComponentResult, EntityResult
from comp_worker.domain.types import Explanation, JsonValue


class ComponentResultModel(BaseModel):
    """Component payout as returned to callers."""

    model_config = ConfigDict(populate_by_name=True)

    component_id: str = Field(alias="componentId")
    component_name: str = Field(alias="componentName")
    component_type: str = Field(alias="componentType")
    payout: float
    explanation: Explanation = {}

    @classmethod
    def from_domain(cls, result: ComponentResult) -> "ComponentResultModel":
        """Build from domain component result."""
        return cls(
            component_id=result.component_id,
            component_name=result.component_name,
            component_type=result.component_type.value,
            payout=result.payout,
            explanation=result.explanation,
        )


class DualPathModel(BaseModel):
    """Dual-path comparison metadata."""

    model_config = ConfigDict(populate_by_name=True)

    match: bool
    intent_total: float = Field(alias="intentTotal")
    component_matches: list[bool] = Field([], alias="componentMatches")
    traces: list[dict[str, JsonValue]] = []


class EntityResultModel(BaseModel):
    """Per-entity result as returned to callers and written to storage."""

    model_config = ConfigDict(populate_by_name=True)

    entity_id: str = Field(alias="entityId")
    variant_id: str = Field(alias="variantId")
    total_payout: float = Field(alias="totalPayout")
    components: list[ComponentResultModel]
    dual_path: DualPathModel = Field(alias="dualPath")
    metrics: dict[str, float] = {}
    flags: list[str] = []

    @classmethod
    def from_domain(cls, result: EntityResult) -> "EntityResultModel":
        """Build from domain entity result."""
        return cls(
            entity_id=result.entity_id,
            variant_id=result.variant_id,
            total_payout=result.total_payout,
            components=[ComponentResultModel.from_domain(c) for c in result.components],
            dual_path=DualPathModel(
                match=result.dual_path.match,
                intent_total=result.dual_path.intent_total,
                component_matches=list(result.dual_path.component_matches),
                traces=list(result.dual_path.traces),
            ),
            metrics=result.metrics,
            flags=list(result.flags),
        )


class CalculationRunResult(BaseModel):
    """Outcome of one calculation run."""

    model_config = ConfigDict(populate_by_name=True)

    batch_id: str = Field(alias="batchId")
    entity_count: int = Field(alias="entityCount")
    total_payout: float = Field(alias="totalPayout")
    concordance_rate: float = Field(alias="concordanceRate")
    per_entity_results: list[EntityResultModel] = Field([], alias="perEntityResults")
