"""Prometheus metrics."""

from prometheus_client import Counter, Histogram

runs_started = Counter(
    "calculation_runs_started_total",
    "Total number of calculation runs started",
)

runs_succeeded = Counter(
    "calculation_runs_succeeded_total",
    "Total number of calculation runs succeeded",
)

runs_failed = Counter(
    "calculation_runs_failed_total",
    "Total number of calculation runs failed",
    ["error_code"],
)

entities_evaluated = Counter(
    "calculation_entities_evaluated_total",
    "Total number of entities evaluated on both paths",
)

dual_path_mismatches = Counter(
    "calculation_dual_path_mismatches_total",
    "Total number of entities where the two paths disagreed",
)

learning_persist_failures = Counter(
    "calculation_learning_persist_failures_total",
    "Total number of best-effort learning writes that failed",
    ["kind"],
)

run_duration_seconds = Histogram(
    "calculation_run_duration_seconds",
    "Duration of calculation runs in seconds",
    buckets=[0.1, 0.5, 1, 5, 10, 30, 60, 120, 300, 600],
)
