"""File-backed calculation store.

Layout under the root directory:

    rule_sets/{rule_set_id}.json
    assignments/{tenant_id}/{rule_set_id}.json      list of entity ids
    metric_rows/{tenant_id}/{period_id}.parquet     entity_id, category, row_data (JSON)
    density/{tenant_id}.json
    training_signals/{tenant_id}.jsonl
    batches/{batch_id}/batch.json
    batches/{batch_id}/results.jsonl
"""

import json
from dataclasses import asdict
from pathlib import Path

import pyarrow as pa
import pyarrow.parquet as pq
import structlog

from comp_worker.application.dto.learning import PatternDensityModel, TrainingSignalModel
from comp_worker.application.dto.results import EntityResultModel
from comp_worker.application.dto.rule_set import parse_rule_set
from comp_worker.domain.entities import (
    CalculationBatch,
    DensityUpdate,
    EntityResult,
    PatternDensity,
    RuleSet,
    TrainingSignal,
)
from comp_worker.domain.ports import CalculationSourcePort, LearningSinkPort, ResultStorePort
from comp_worker.domain.types import JsonValue, MetricRowDict

logger = structlog.get_logger()

_ROW_SCHEMA = pa.schema(
    [
        ("entity_id", pa.string()),
        ("category", pa.string()),
        ("row_data", pa.string()),
    ]
)


class FileCalculationStore(CalculationSourcePort, ResultStorePort, LearningSinkPort):
    """Calculation store over JSON, JSONL and Parquet files."""

    def __init__(self, root: Path | str) -> None:
        """Initialize file store rooted at a directory."""
        self.root = Path(root)

    # Paths

    def _rule_set_path(self, rule_set_id: str) -> Path:
        return self.root / "rule_sets" / f"{rule_set_id}.json"

    def _assignments_path(self, tenant_id: str, rule_set_id: str) -> Path:
        return self.root / "assignments" / tenant_id / f"{rule_set_id}.json"

    def _rows_path(self, tenant_id: str, period_id: str) -> Path:
        return self.root / "metric_rows" / tenant_id / f"{period_id}.parquet"

    def _density_path(self, tenant_id: str) -> Path:
        return self.root / "density" / f"{tenant_id}.json"

    def _batch_dir(self, batch_id: str) -> Path:
        return self.root / "batches" / batch_id

    # Seeding

    def write_rule_set(self, rule_set_id: str, data: dict[str, JsonValue]) -> None:
        """Write rule set JSON."""
        _write_json(self._rule_set_path(rule_set_id), data)

    def write_assignments(self, tenant_id: str, rule_set_id: str, entity_ids: list[str]) -> None:
        """Write entity assignments."""
        _write_json(self._assignments_path(tenant_id, rule_set_id), entity_ids)

    def write_metric_rows(
        self,
        tenant_id: str,
        period_id: str,
        rows: list[MetricRowDict],
        compression: str = "snappy",
        row_group_size: int | None = None,
    ) -> None:
        """Write committed metric rows to Parquet.

        Paged reads only touch the row groups a page overlaps.
        """
        table = pa.Table.from_pylist(
            [
                {
                    "entity_id": row.get("entity_id"),
                    "category": row.get("category", ""),
                    "row_data": json.dumps(row.get("row_data") or {}, ensure_ascii=False),
                }
                for row in rows
            ],
            schema=_ROW_SCHEMA,
        )
        path = self._rows_path(tenant_id, period_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        pq.write_table(
            table,
            path,
            compression=compression,
            use_dictionary=True,
            row_group_size=row_group_size,
        )

    # CalculationSourcePort

    async def load_rule_set(self, rule_set_id: str) -> RuleSet | None:
        """Load and validate rule set JSON."""
        path = self._rule_set_path(rule_set_id)
        if not path.exists():
            return None
        return parse_rule_set(json.loads(path.read_text(encoding="utf-8")))

    async def load_assigned_entities(
        self,
        rule_set_id: str,
        tenant_id: str,
        offset: int,
        limit: int,
    ) -> list[str]:
        """Load one page of assigned entity ids."""
        path = self._assignments_path(tenant_id, rule_set_id)
        if not path.exists():
            return []
        entity_ids = json.loads(path.read_text(encoding="utf-8"))
        return [str(e) for e in entity_ids[offset : offset + limit]]

    async def load_committed_metric_rows(
        self,
        tenant_id: str,
        period_id: str,
        offset: int,
        limit: int,
    ) -> list[MetricRowDict]:
        """Load one page of metric rows from Parquet."""
        path = self._rows_path(tenant_id, period_id)
        if not path.exists():
            return []

        try:
            page = _read_page(path, offset, limit)
        except (OSError, pa.ArrowInvalid) as e:
            logger.error("failed_to_read_metric_rows", path=str(path), error=str(e))
            raise ValueError(f"Metric rows unreadable: {path}: {e}") from e

        return [
            {
                "entity_id": record["entity_id"],
                "category": record["category"] or "",
                "row_data": json.loads(record["row_data"]) if record["row_data"] else {},
            }
            for record in page
        ]

    async def load_prior_density(self, tenant_id: str) -> dict[str, PatternDensity]:
        """Load persisted density for a tenant."""
        path = self._density_path(tenant_id)
        if not path.exists():
            return {}
        records = json.loads(path.read_text(encoding="utf-8"))
        return {
            signature: PatternDensityModel.model_validate({"signature": signature, **record}).to_domain()
            for signature, record in records.items()
        }

    # ResultStorePort

    async def create_batch(self, batch: CalculationBatch) -> None:
        """Create batch record."""
        _write_json(self._batch_dir(batch.batch_id) / "batch.json", _batch_dict(batch))

    async def persist_entity_results(
        self,
        batch: CalculationBatch,
        results: list[EntityResult],
    ) -> None:
        """Write entity results as JSONL, one entity per line."""
        path = self._batch_dir(batch.batch_id) / "results.jsonl"
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as handle:
            for result in results:
                handle.write(EntityResultModel.from_domain(result).model_dump_json(by_alias=True))
                handle.write("\n")

    async def persist_batch_summary(self, batch: CalculationBatch) -> None:
        """Write batch summary and lifecycle state."""
        _write_json(self._batch_dir(batch.batch_id) / "batch.json", _batch_dict(batch))

    def read_batch(self, batch_id: str) -> dict[str, JsonValue]:
        """Read a stored batch record."""
        return json.loads((self._batch_dir(batch_id) / "batch.json").read_text(encoding="utf-8"))

    def read_entity_results(self, batch_id: str) -> list[EntityResultModel]:
        """Read stored entity results."""
        path = self._batch_dir(batch_id) / "results.jsonl"
        with path.open(encoding="utf-8") as handle:
            return [EntityResultModel.model_validate_json(line) for line in handle if line.strip()]

    # LearningSinkPort

    async def persist_density_updates(
        self,
        tenant_id: str,
        updates: list[DensityUpdate],
    ) -> None:
        """Merge density updates into the tenant's density file."""
        path = self._density_path(tenant_id)
        records = json.loads(path.read_text(encoding="utf-8")) if path.exists() else {}
        for update in updates:
            model = PatternDensityModel.from_update(update)
            records[update.signature] = model.model_dump(
                mode="json", by_alias=True, exclude={"signature"}
            )
        _write_json(path, records)

    async def persist_training_signals(
        self,
        tenant_id: str,
        signals: list[TrainingSignal],
    ) -> None:
        """Append training signals as JSONL."""
        path = self.root / "training_signals" / f"{tenant_id}.jsonl"
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as handle:
            for signal in signals:
                handle.write(TrainingSignalModel.from_domain(signal).model_dump_json(by_alias=True))
                handle.write("\n")


def _batch_dict(batch: CalculationBatch) -> dict[str, JsonValue]:
    record = asdict(batch)
    record["created_at"] = batch.created_at.isoformat()
    record["completed_at"] = batch.completed_at.isoformat() if batch.completed_at else None
    return record


def _write_json(path: Path, data: JsonValue) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, ensure_ascii=False, default=str, indent=2), encoding="utf-8")


def _read_page(path: Path, offset: int, limit: int) -> list[dict]:
    """Read rows [offset, offset + limit) from the row groups that hold them."""
    parquet_file = pq.ParquetFile(path)
    metadata = parquet_file.metadata

    tables = []
    first_row = None
    start = 0
    for index in range(metadata.num_row_groups):
        end = start + metadata.row_group(index).num_rows
        if end > offset and start < offset + limit:
            if first_row is None:
                first_row = start
            tables.append(parquet_file.read_row_group(index, columns=list(_ROW_SCHEMA.names)))
        start = end

    if not tables:
        return []
    return pa.concat_tables(tables).slice(offset - first_row, limit).to_pylist()
