"""Unit tests for the batch summary builder."""

import pytest

from comp_worker.application.services.batch_summary import build_summary, concordance_rate
from comp_worker.application.services.dual_path import EVALUATION_ERROR_FLAG
from comp_worker.application.services.surface_consolidator import consolidate
from comp_worker.domain.entities import ComponentResult, DualPathMetadata, EntityResult
from comp_worker.domain.enums import ComponentType


def _result(entity_id: str, payouts: list[float], match: bool = True, variant_id: str = "v-1", flags=()):
    components = tuple(
        ComponentResult(f"c-{i}", f"Component {i}", ComponentType.FLAT_PERCENTAGE, payout)
        for i, payout in enumerate(payouts)
    )
    return EntityResult(
        entity_id=entity_id,
        variant_id=variant_id,
        components=components,
        total_payout=sum(payouts),
        dual_path=DualPathMetadata(match=match, intent_total=sum(payouts)),
        flags=tuple(flags),
    )


_STATS = {"events_written": 0, "confidence_events": 0, "anomaly_events": 0, "patterns_loaded": 0}


def _summary(results, **kwargs):
    return build_summary(
        results,
        component_count=kwargs.get("component_count", 2),
        consolidation=consolidate([], {}),
        surface_stats=kwargs.get("stats", _STATS),
        execution_modes=kwargs.get("modes", {}),
    )


def test_concordance_rate_empty_batch():
    """Test an empty batch is fully concordant."""
    assert concordance_rate(0, 0) == 100.0
    assert concordance_rate(3, 4) == 75.0


def test_empty_batch_summary():
    """Test summary of a batch with no entities."""
    summary = _summary([])

    assert summary.total_payout == 0.0
    assert summary.entity_count == 0
    assert summary.concordance_rate == 100.0
    assert summary.outliers == ()


def test_summary_totals_and_counts():
    """Test totals, match counts and failed entities."""
    results = [
        _result("e-1", [100.0, 50.0]),
        _result("e-2", [0.0, 0.0], match=False, flags=[EVALUATION_ERROR_FLAG]),
        _result("e-3", [20.0, 0.0], variant_id="v-2"),
    ]
    summary = _summary(
        results,
        stats={"events_written": 7, "confidence_events": 6, "anomaly_events": 1, "patterns_loaded": 3},
        modes={"sig-a": "full_trace"},
    )

    assert summary.total_payout == 170.0
    assert summary.match_count == 2
    assert summary.mismatch_count == 1
    assert summary.concordance_rate == pytest.approx(200 / 3)
    assert summary.failed_entity_count == 1
    assert summary.events_written == 7
    assert summary.entity_anomaly_count == 1
    assert summary.patterns_loaded == 3
    assert summary.pattern_signatures == ("sig-a",)
    assert summary.zero_payout_count == 1
    assert summary.median_payout == 20.0


def test_component_totals_sorted_by_total():
    """Test per-component totals count entities with a positive payout."""
    summary = _summary([_result("e-1", [10.0, 50.0]), _result("e-2", [0.0, 30.0])])

    first, second = summary.component_totals
    assert first == {"component_id": "c-1", "component_name": "Component 1", "total": 80.0, "entity_count": 2}
    assert second["component_id"] == "c-0"
    assert second["entity_count"] == 1


def test_variant_distribution():
    """Test per-variant counts and averages."""
    summary = _summary(
        [_result("e-1", [10.0]), _result("e-2", [30.0]), _result("e-3", [5.0], variant_id="v-2")]
    )

    distribution = {d["variant_id"]: d for d in summary.variant_distribution}
    assert distribution["v-1"] == {"variant_id": "v-1", "count": 2, "total_payout": 40.0, "average_payout": 20.0}
    assert distribution["v-2"]["count"] == 1


def test_outliers_beyond_three_deviations():
    """Test an extreme payout is reported as an outlier."""
    results = [_result(f"e-{i}", [100.0]) for i in range(20)] + [_result("big", [10000.0])]
    summary = _summary(results)

    (outlier,) = summary.outliers
    assert outlier["entity_id"] == "big"
    assert outlier["z_score"] > 3


def test_no_outliers_when_uniform():
    """Test identical payouts have no outliers."""
    summary = _summary([_result(f"e-{i}", [100.0]) for i in range(5)])
    assert summary.outliers == ()
