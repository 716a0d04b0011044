"""Domain types and aliases."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, TypedDict

Timestamp = datetime

# JSON-serializable types (recursive)
if TYPE_CHECKING:
    JsonValue = str | int | float | bool | None | dict[str, "JsonValue"] | list["JsonValue"]
else:
    JsonValue = str | int | float | bool | None | dict | list

# Raw committed row payload as delivered by the data-access collaborator
RowData = dict[str, JsonValue]

# Structured explanation attached to component results and traces
Explanation = dict[str, JsonValue]

# 2D payout grid, rows x columns
Grid = tuple[tuple[float, ...], ...]

AttributeValue = str | float


class MetricRowDict(TypedDict, total=False):
    """Committed metric row structure."""
    entity_id: str | None
    category: str
    row_data: RowData


class ComponentTotalDict(TypedDict):
    """Per-component payout total in the batch summary."""
    component_id: str
    component_name: str
    total: float
    entity_count: int


class VariantGroupDict(TypedDict):
    """Per-variant payout distribution in the batch summary."""
    variant_id: str
    count: int
    total_payout: float
    average_payout: float


class OutlierDict(TypedDict):
    """Entity whose total sits more than three deviations from the mean."""
    entity_id: str
    total: float
    z_score: float
