"""Metric aggregator.

Collapses committed metric rows into one flat metric map per entity. Identity
fields keep their first occurrence; every other numeric field is summed.
Location-scoped rows (no entity id) are aggregated per location and merged
into each entity's map under a prefix.
"""

import math
from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable, Iterator, Sequence

import pandas as pd
import structlog

from comp_worker.domain.entities import EntityInputs, MetricMap
from comp_worker.domain.enums import AggregationRule
from comp_worker.domain.types import AttributeValue, JsonValue, MetricRowDict

logger = structlog.get_logger()

_ENTITY = "entity"
_LOCATION = "location"


@dataclass(frozen=True)
class AggregationRules:
    """Per-field aggregation configuration."""

    identity_fields: frozenset[str] = frozenset()
    location_key_field: str | None = None
    location_metric_prefix: str = "location_"

    def rule_for(self, field: str) -> AggregationRule:
        """Aggregation rule for a field."""
        return AggregationRule.FIRST if field in self.identity_fields else AggregationRule.SUM


@dataclass(frozen=True)
class _Value:
    field: str
    identity: bool
    number: float | None
    attribute: AttributeValue | None
    malformed: bool


def _as_number(value: JsonValue) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _flatten(row_data: dict[str, JsonValue] | None, rules: AggregationRules) -> Iterator[_Value]:
    for field, raw in (row_data or {}).items():
        if raw is None or field.startswith("_"):
            continue

        if rules.rule_for(field) == AggregationRule.FIRST:
            if isinstance(raw, str):
                yield _Value(field, True, None, raw, False)
                continue
            number = _as_number(raw)
            yield _Value(field, True, number, number, number is None)
            continue

        number = _as_number(raw)
        yield _Value(field, False, number, None, number is None)


def location_key(value: AttributeValue | None) -> str | None:
    """Normalize a location identifier so 12, 12.0 and "12" agree."""
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    text = str(value).strip()
    return text or None


class _Accumulator:
    """Aggregated values for one owner (entity or location)."""

    def __init__(self) -> None:
        self.metrics: dict[str, float] = {}
        self.attributes: dict[str, AttributeValue] = {}
        self.malformed: list[str] = []

    def add(self, value: _Value) -> None:
        if value.malformed:
            if value.field not in self.malformed:
                self.malformed.append(value.field)
            return
        if value.identity:
            if value.attribute is not None:
                self.attributes.setdefault(value.field, value.attribute)
            if value.number is not None:
                self.metrics.setdefault(value.field, value.number)
            return
        self.metrics[value.field] = self.metrics.get(value.field, 0.0) + value.number


def _merge_location(
    metrics: dict[str, float],
    attributes: dict[str, AttributeValue],
    locations: dict[str, dict[str, float]],
    rules: AggregationRules,
) -> dict[str, float]:
    if rules.location_key_field is None:
        return metrics
    key = location_key(attributes.get(rules.location_key_field))
    if key is None or key not in locations:
        return metrics

    merged = dict(metrics)
    for field, value in locations[key].items():
        merged.setdefault(f"{rules.location_metric_prefix}{field}", value)
    return merged


def aggregate_entity(
    entity_id: str,
    rows: Iterable[MetricRowDict],
    location_rows: Iterable[MetricRowDict],
    rules: AggregationRules,
) -> EntityInputs:
    """Aggregate one entity's rows, plus rows scoped to its location."""
    entity = _Accumulator()
    for row in rows:
        for value in _flatten(row.get("row_data"), rules):
            entity.add(value)

    location = _Accumulator()
    for row in location_rows:
        for value in _flatten(row.get("row_data"), rules):
            if not value.identity:
                location.add(value)

    key = None
    if rules.location_key_field is not None:
        key = location_key(entity.attributes.get(rules.location_key_field))
    metrics = _merge_location(
        entity.metrics,
        entity.attributes,
        {key: location.metrics} if key is not None else {},
        rules,
    )
    return EntityInputs(
        entity_id=entity_id,
        metrics=MetricMap(metrics),
        attributes=dict(entity.attributes),
        malformed=tuple(entity.malformed),
    )


def _records(rows: Sequence[MetricRowDict], rules: AggregationRules) -> list[dict]:
    records = []
    for row in rows:
        data = row.get("row_data") or {}
        entity_id = row.get("entity_id")
        if entity_id is not None:
            scope, owner = _ENTITY, str(entity_id)
        else:
            key = (
                location_key(data.get(rules.location_key_field))
                if rules.location_key_field is not None
                else None
            )
            if key is None:
                continue
            scope, owner = _LOCATION, key

        for value in _flatten(data, rules):
            if scope == _LOCATION and value.identity:
                continue
            records.append(
                {
                    "scope": scope,
                    "owner": owner,
                    "field": value.field,
                    "identity": value.identity,
                    "number": value.number,
                    "attribute": value.attribute,
                    "malformed": value.malformed,
                }
            )
    return records


def aggregate_population(
    rows: Sequence[MetricRowDict],
    entity_ids: Sequence[str],
    rules: AggregationRules,
) -> dict[str, EntityInputs]:
    """Aggregate all rows of a run in one pass.

    Groups once with pandas so no per-entity scan happens in the evaluation
    loop. Entities without rows get an empty metric map.
    """
    metrics: dict[tuple[str, str], dict[str, float]] = defaultdict(dict)
    attributes: dict[str, dict[str, AttributeValue]] = defaultdict(dict)
    malformed: dict[str, list[str]] = defaultdict(list)

    records = _records(rows, rules)
    if records:
        df = pd.DataFrame.from_records(
            records,
            columns=["scope", "owner", "field", "identity", "number", "attribute", "malformed"],
        )
        df["number"] = df["number"].astype(float)
        keys = ["scope", "owner", "field"]
        valid = df[~df["malformed"]]

        sums = valid[~valid["identity"]].groupby(keys, sort=False)["number"].sum()
        firsts = valid[valid["identity"]].groupby(keys, sort=False)["number"].first()
        for (scope, owner, field), value in pd.concat([sums, firsts.dropna()]).items():
            metrics[(scope, owner)][field] = float(value)

        identity = valid[valid["identity"] & valid["attribute"].notna()]
        first_attributes = identity.groupby(["owner", "field"], sort=False)["attribute"].first()
        for (owner, field), value in first_attributes.items():
            attributes[owner][field] = value

        bad = df[df["malformed"] & (df["scope"] == _ENTITY)].drop_duplicates(
            subset=["owner", "field"]
        )
        for owner, field in zip(bad["owner"], bad["field"]):
            malformed[owner].append(field)

    locations = {
        owner: values for (scope, owner), values in metrics.items() if scope == _LOCATION
    }

    result: dict[str, EntityInputs] = {}
    for entity_id in entity_ids:
        entity_attributes = attributes.get(entity_id, {})
        entity_metrics = _merge_location(
            metrics.get((_ENTITY, entity_id), {}), entity_attributes, locations, rules
        )
        result[entity_id] = EntityInputs(
            entity_id=entity_id,
            metrics=MetricMap(entity_metrics),
            attributes=dict(entity_attributes),
            malformed=tuple(malformed.get(entity_id, ())),
        )

    logger.info(
        "metrics_aggregated",
        row_count=len(rows),
        entity_count=len(result),
        location_count=len(locations),
    )
    return result
