"""Runtime wiring for the calculation core."""

from pathlib import Path

import structlog

from comp_worker.application.dto.results import CalculationRunResult
from comp_worker.application.use_cases.run_calculation import run as run_calculation
from comp_worker.domain.ports import (
    CalculationSourcePort,
    ClockPort,
    LearningSinkPort,
    ResultStorePort,
)
from comp_worker.infrastructure.config.settings import Settings
from comp_worker.infrastructure.observability.logging import configure_logging
from comp_worker.infrastructure.persistence.file_store import FileCalculationStore
from comp_worker.infrastructure.runtime.clock import SystemClock
from comp_worker.infrastructure.runtime.health import start_metrics_server

logger = structlog.get_logger()


class CalculationService:
    """Entry point exposing run_calculation over wired adapters."""

    def __init__(
        self,
        source: CalculationSourcePort,
        result_store: ResultStorePort,
        learning_sink: LearningSinkPort,
        settings: Settings | None = None,
        clock: ClockPort | None = None,
        await_learning: bool = True,
    ) -> None:
        """Initialize service."""
        self.source = source
        self.result_store = result_store
        self.learning_sink = learning_sink
        self.settings = settings or Settings()
        self.clock = clock or SystemClock()
        self.await_learning = await_learning

    async def run_calculation(
        self,
        tenant_id: str,
        period_id: str,
        rule_set_id: str,
        batch_id: str | None = None,
    ) -> CalculationRunResult:
        """Run one calculation batch."""
        return await run_calculation(
            tenant_id,
            period_id,
            rule_set_id,
            source=self.source,
            result_store=self.result_store,
            learning_sink=self.learning_sink,
            clock=self.clock,
            settings=self.settings,
            batch_id=batch_id,
            await_learning=self.await_learning,
        )


def build_file_service(root: Path | str, settings: Settings | None = None) -> CalculationService:
    """Configure logging and metrics, and wire a service over a file store."""
    settings = settings or Settings()
    configure_logging(settings.log_level, settings.log_json)

    if settings.metrics_server_enabled:
        start_metrics_server(settings)

    store = FileCalculationStore(root)
    logger.info(
        "service_ready",
        root=str(root),
        max_workers=settings.max_workers,
        entity_chunk_size=settings.entity_chunk_size,
        metrics_server_enabled=settings.metrics_server_enabled,
    )
    return CalculationService(store, store, store, settings=settings)
