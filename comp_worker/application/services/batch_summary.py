"""Batch summary builder."""

from collections.abc import Mapping, Sequence
from dataclasses import replace

import pandas as pd

from comp_worker.application.services.confidence_surface import SurfaceStats
from comp_worker.application.services.dual_path import EVALUATION_ERROR_FLAG
from comp_worker.application.services.surface_consolidator import ConsolidationResult
from comp_worker.domain.entities import BatchSummary, EntityResult
from comp_worker.domain.types import ComponentTotalDict, OutlierDict, VariantGroupDict

_OUTLIER_DEVIATIONS = 3.0


def concordance_rate(match_count: int, entity_count: int) -> float:
    """Percentage of entities whose paths agreed; 100 for an empty batch."""
    if entity_count == 0:
        return 100.0
    return match_count / entity_count * 100.0


def build_summary(
    results: Sequence[EntityResult],
    component_count: int,
    consolidation: ConsolidationResult,
    surface_stats: SurfaceStats,
    execution_modes: Mapping[str, str],
) -> BatchSummary:
    """Summarize entity results and learning outputs for one batch."""
    total = sum(r.total_payout for r in results)
    match_count = sum(1 for r in results if r.dual_path.match)

    summary = BatchSummary(
        total_payout=total,
        entity_count=len(results),
        component_count=component_count,
        match_count=match_count,
        mismatch_count=len(results) - match_count,
        concordance_rate=concordance_rate(match_count, len(results)),
        failed_entity_count=sum(1 for r in results if EVALUATION_ERROR_FLAG in r.flags),
        events_written=surface_stats["events_written"],
        density_update_count=len(consolidation.updates),
        anomaly_count=len(consolidation.anomalous_signatures),
        entity_anomaly_count=surface_stats["anomaly_events"],
        patterns_loaded=surface_stats["patterns_loaded"],
        pattern_signatures=tuple(execution_modes),
        execution_modes=dict(execution_modes),
    )
    if not results:
        return summary

    payouts = pd.Series([r.total_payout for r in results], dtype=float)
    mean = float(payouts.mean())
    std = float(payouts.std(ddof=0))

    return replace(
        summary,
        average_payout=mean,
        median_payout=float(payouts.median()),
        zero_payout_count=int((payouts == 0).sum()),
        component_totals=_component_totals(results),
        variant_distribution=_variant_distribution(results),
        outliers=_outliers(results, mean, std),
    )


def _component_totals(results: Sequence[EntityResult]) -> tuple[ComponentTotalDict, ...]:
    rows = [
        {"component_id": c.component_id, "component_name": c.component_name, "payout": c.payout}
        for r in results
        for c in r.components
    ]
    if not rows:
        return ()

    df = pd.DataFrame(rows)
    grouped = (
        df.groupby("component_id", sort=False)
        .agg(
            component_name=("component_name", "first"),
            total=("payout", "sum"),
            entity_count=("payout", lambda s: int((s > 0).sum())),
        )
        .sort_values("total", ascending=False, kind="stable")
    )
    return tuple(
        {
            "component_id": component_id,
            "component_name": row.component_name,
            "total": float(row.total),
            "entity_count": int(row.entity_count),
        }
        for component_id, row in grouped.iterrows()
    )


def _variant_distribution(results: Sequence[EntityResult]) -> tuple[VariantGroupDict, ...]:
    df = pd.DataFrame(
        {"variant_id": [r.variant_id for r in results], "total": [r.total_payout for r in results]}
    )
    grouped = df.groupby("variant_id", sort=False)["total"].agg(["count", "sum", "mean"])
    return tuple(
        {
            "variant_id": variant_id,
            "count": int(row["count"]),
            "total_payout": float(row["sum"]),
            "average_payout": float(row["mean"]),
        }
        for variant_id, row in grouped.iterrows()
    )


def _outliers(results: Sequence[EntityResult], mean: float, std: float) -> tuple[OutlierDict, ...]:
    if std <= 0:
        return ()
    outliers: list[OutlierDict] = [
        {
            "entity_id": r.entity_id,
            "total": r.total_payout,
            "z_score": (r.total_payout - mean) / std,
        }
        for r in results
        if abs(r.total_payout - mean) > _OUTLIER_DEVIATIONS * std
    ]
    return tuple(sorted(outliers, key=lambda o: abs(o["z_score"]), reverse=True))
