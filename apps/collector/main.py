"""
Seismo Collector - Main Entry Point

Runs the pipeline jobs on independent tickers. Each job is registered by name
with its handler and interval; every tick is recorded in system_status.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import partial
from typing import Any, Awaitable, Callable, Optional

from apps.collector.jobs.baselines import compute_all_baselines
from apps.collector.jobs.catalog_sync import sync_catalog
from apps.collector.jobs.platform_metrics import compute_all_platform_metrics
from apps.collector.jobs.prioritization import reprioritize_all
from apps.collector.jobs.retention import run_retention_cleanup
from apps.collector.jobs.rollups import aggregate_daily, aggregate_hourly
from apps.collector.jobs.scoring import compute_all_scores
from apps.collector.jobs.trade_sync import sync_trades_for_tier
from packages.seismo.models import SyncTier
from packages.seismo.settings import settings
from packages.seismo.storage import get_db_pool
from packages.seismo.storage.queries import StatusQueries

logger = logging.getLogger("collector")


def _configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


class Shutdown:
    """Signal-driven shutdown flag."""
    def __init__(self) -> None:
        self._stop = asyncio.Event()

    def request(self) -> None:
        self._stop.set()

    async def wait(self) -> None:
        await self._stop.wait()

    @property
    def is_set(self) -> bool:
        return self._stop.is_set()


@dataclass(frozen=True)
class Job:
    name: str
    handler: Callable[[], Awaitable[Any]]
    interval_seconds: int


def build_registry() -> dict[str, Job]:
    """All schedulable jobs, keyed by name."""
    jobs = [
        Job("sync_catalog", sync_catalog, settings.catalog_sync_interval_seconds),
        Job("sync_hot_trades", partial(sync_trades_for_tier, SyncTier.HOT),
            settings.hot_sync_interval_seconds),
        Job("sync_warm_trades", partial(sync_trades_for_tier, SyncTier.WARM),
            settings.warm_sync_interval_seconds),
        Job("sync_cold_trades", partial(sync_trades_for_tier, SyncTier.COLD),
            settings.cold_sync_interval_seconds),
        Job("compute_scores", compute_all_scores, settings.score_interval_seconds),
        Job("aggregate_hourly", aggregate_hourly, settings.hourly_rollup_interval_seconds),
        Job("aggregate_daily", aggregate_daily, settings.daily_rollup_interval_seconds),
        Job("platform_metrics", compute_all_platform_metrics,
            settings.platform_metrics_interval_seconds),
        Job("compute_baselines", compute_all_baselines, settings.baseline_interval_seconds),
        Job("reprioritize", reprioritize_all, settings.reprioritize_interval_seconds),
        Job("retention", run_retention_cleanup, settings.retention_interval_seconds),
    ]
    return {job.name: job for job in jobs}


def select_jobs(registry: dict[str, Job], names: Optional[list[str]]) -> list[Job]:
    """Jobs to run: the named subset, or everything when no names are given."""
    if not names:
        return list(registry.values())
    selected = []
    for name in names:
        if name in registry:
            selected.append(registry[name])
        else:
            logger.warning(f"Unknown job '{name}', ignoring")
    return selected


async def run_job_once(job: Job) -> dict:
    """Run one tick; failures are logged and recorded, never raised."""
    started = time.time()
    status: dict[str, Any] = {"last_run": datetime.now(timezone.utc).isoformat()}
    try:
        result = await job.handler()
        status.update(status="ok", result=result)
    except Exception as e:
        logger.exception(f"Job {job.name} failed")
        status.update(status="error", error=str(e))
    status["elapsed_seconds"] = round(time.time() - started, 3)

    try:
        await asyncio.to_thread(StatusQueries.upsert_status, f"job:{job.name}", status)
    except Exception as e:
        logger.warning(f"Could not record status for {job.name}: {e}")
    return status


async def run_ticker(job: Job, shutdown: Shutdown) -> None:
    """Run a job now and then every interval until shutdown."""
    logger.info(f"Ticker {job.name} starting (interval={job.interval_seconds}s)")
    while not shutdown.is_set:
        await run_job_once(job)

        # Interruptible sleep
        try:
            await asyncio.wait_for(shutdown.wait(), timeout=job.interval_seconds)
            break
        except asyncio.TimeoutError:
            continue


async def _amain() -> None:
    _configure_logging()
    logger.info("Starting collector…")

    # Fail fast on an unreachable database
    db = get_db_pool()
    if not db.health_check():
        logger.error("Database connectivity check failed.")
        sys.exit(1)

    shutdown = Shutdown()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, shutdown.request)
        except NotImplementedError:
            # Windows / some runtimes
            signal.signal(sig, lambda *_: shutdown.request())

    jobs = select_jobs(build_registry(), settings.collector_jobs)
    logger.info(f"Running jobs: {', '.join(j.name for j in jobs)}")
    tasks = [asyncio.create_task(run_ticker(job, shutdown)) for job in jobs]

    try:
        await shutdown.wait()
    finally:
        logger.info("Shutting down…")
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        db.close()


def main() -> None:
    asyncio.run(_amain())


if __name__ == "__main__":
    main()
