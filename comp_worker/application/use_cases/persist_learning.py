"""Persist density updates and training signals (best effort)."""

from typing import Awaitable, Callable, Sequence

import structlog
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from comp_worker.domain.entities import DensityUpdate, TrainingSignal
from comp_worker.domain.ports import LearningSinkPort
from comp_worker.infrastructure.observability.metrics import learning_persist_failures

logger = structlog.get_logger()


async def run(
    tenant_id: str,
    batch_id: str,
    updates: Sequence[DensityUpdate],
    signals: Sequence[TrainingSignal],
    learning_sink: LearningSinkPort,
    attempts: int = 3,
    wait_seconds: float = 1.0,
) -> bool:
    """Write learning outputs; never raises.

    Returns True when every write succeeded.
    """
    density_ok = await _persist(
        "density_updates",
        lambda: learning_sink.persist_density_updates(tenant_id, list(updates)),
        batch_id,
        attempts,
        wait_seconds,
    )
    signals_ok = await _persist(
        "training_signals",
        lambda: learning_sink.persist_training_signals(tenant_id, list(signals)),
        batch_id,
        attempts,
        wait_seconds,
    )
    return density_ok and signals_ok


async def _persist(
    kind: str,
    write: Callable[[], Awaitable[None]],
    batch_id: str,
    attempts: int,
    wait_seconds: float,
) -> bool:
    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=wait_seconds, max=10),
            reraise=True,
        ):
            with attempt:
                await write()
    except Exception as e:
        learning_persist_failures.labels(kind=kind).inc()
        logger.warning(
            "learning_persist_failed",
            batch_id=batch_id,
            kind=kind,
            attempts=attempts,
            error=str(e),
        )
        return False

    logger.info("learning_persisted", batch_id=batch_id, kind=kind)
    return True
