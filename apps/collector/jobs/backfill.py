"""
Historical backfill.

Seeds bars (and through them baselines and platform metrics) for a past
range. Trades are fetched in hour-aligned chunks and run through the same
snapshot gate as live ingestion, but the planned snapshots go straight into
hourly bars: raw snapshots only live for the retention horizon. Markets are
processed by a small bounded worker pool.
"""

import asyncio
import logging
import time
from datetime import datetime, timedelta
from typing import Optional

from apps.collector.adapters.polymarket import PolymarketAdapter, get_polymarket_adapter
from apps.collector.jobs.platform_metrics import compute_all_platform_metrics
from apps.collector.jobs.rollups import aggregate_daily_range, bars_from_snapshots, bucket_start
from apps.collector.jobs.snapshots import SnapshotState, plan_snapshots
from packages.seismo.models import Granularity
from packages.seismo.settings import settings
from packages.seismo.storage.queries import BarQueries, CatalogQueries, SnapshotQueries

logger = logging.getLogger(__name__)

MAX_CONCURRENCY = 5


def backfill_market_sync(
    adapter: PolymarketAdapter,
    market_id: str,
    event_id: str,
    start: datetime,
    end: datetime,
) -> dict:
    """Backfill hourly bars for one market over [start, end)."""
    step = timedelta(hours=settings.backfill_step_hours)
    state = SnapshotState.from_row(SnapshotQueries.get_latest_snapshot(market_id, before=start))

    chunk_start = bucket_start(start, Granularity.HOUR)
    trades_seen = bars_written = 0
    while chunk_start < end:
        chunk_end = min(end, chunk_start + step)
        page = adapter.fetch_trades_page(
            market_id, event_id, chunk_start, settings.backfill_limit_per_call
        )
        in_chunk = [
            t for t in page
            if t.is_valid and chunk_start <= t.timestamp < chunk_end
        ]
        trades_seen += len(in_chunk)

        planned, state = plan_snapshots(market_id, event_id, in_chunk, state)
        bars = bars_from_snapshots(s.model_dump() for s in planned)
        if bars:
            BarQueries.upsert_bars(bars)
            bars_written += len(bars)

        time.sleep(settings.backfill_request_pause_seconds)
        chunk_start = chunk_end

    return {"trades": trades_seen, "bars": bars_written}


def _resolve_markets(market_ids: Optional[list[str]]) -> list[dict]:
    if market_ids is None:
        return CatalogQueries.get_active_markets(settings.baseline_market_limit)
    markets = []
    for market_id in market_ids:
        row = CatalogQueries.get_market(market_id)
        if row:
            markets.append(row)
        else:
            logger.warning(f"Unknown market {market_id}, skipping")
    return markets


async def backfill(
    start: datetime,
    end: datetime,
    market_ids: Optional[list[str]] = None,
    concurrency: Optional[int] = None,
    adapter: Optional[PolymarketAdapter] = None,
) -> dict:
    """
    Backfill a historical range, then roll it into daily bars and refresh
    platform metrics.

    Args:
        start: Range start (inclusive)
        end: Range end (exclusive)
        market_ids: Markets to backfill; all active markets when None
        concurrency: Worker count, clamped to 1-5
        adapter: Trade feed adapter

    Returns:
        Per-run totals
    """
    adapter = adapter or get_polymarket_adapter()
    workers = max(1, min(MAX_CONCURRENCY, concurrency or settings.backfill_concurrency))
    markets = await asyncio.to_thread(_resolve_markets, market_ids)
    logger.info(
        f"Backfilling {len(markets)} markets {start.isoformat()} -> {end.isoformat()} "
        f"with {workers} workers"
    )

    semaphore = asyncio.Semaphore(workers)

    async def backfill_one(market: dict) -> dict:
        async with semaphore:
            return await asyncio.to_thread(
                backfill_market_sync,
                adapter,
                market["market_id"],
                market["event_id"],
                start,
                end,
            )

    results = await asyncio.gather(*(backfill_one(m) for m in markets), return_exceptions=True)

    totals = {"markets": 0, "failed": 0, "trades": 0, "hourly_bars": 0, "daily_bars": 0}
    for market, result in zip(markets, results):
        if isinstance(result, BaseException):
            logger.warning(f"Backfill failed for {market['market_id']}: {result}")
            totals["failed"] += 1
            continue
        totals["markets"] += 1
        totals["trades"] += result["trades"]
        totals["hourly_bars"] += result["bars"]

    totals["daily_bars"] = await asyncio.to_thread(aggregate_daily_range, start, end)
    await compute_all_platform_metrics()

    logger.info(
        f"Backfill complete: {totals['markets']} markets, {totals['hourly_bars']} hourly "
        f"and {totals['daily_bars']} daily bars, {totals['failed']} failed"
    )
    return totals
