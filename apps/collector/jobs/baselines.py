"""
Baseline statistics job.

Computes each market's own return dispersion at three scales so that a new
move can be z-scored against what is normal for that market:
- minute scale from raw snapshots (14 days, needs 10 returns)
- hour scale from hourly bars (30 days, needs 3 bars)
- day scale from daily bars (365 days, needs 3 bars)

A scale without enough history is held at mean 0 and the floored stddev.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from packages.seismo.analytics.metrics import return_stats, safe_div
from packages.seismo.models import Baseline, Granularity, InsufficientData
from packages.seismo.settings import settings
from packages.seismo.storage.queries import BarQueries, BaselineQueries, CatalogQueries, SnapshotQueries

logger = logging.getLogger(__name__)


def _bar_scale_stats(
    market_id: str,
    granularity: Granularity,
    lookback_days: int,
    now: datetime,
) -> tuple[float, float]:
    bars = BarQueries.get_bars_range(
        granularity, now - timedelta(days=lookback_days), now, market_id=market_id
    )
    floor = settings.baseline_std_floor
    if len(bars) < settings.baseline_min_bars:
        return 0.0, floor
    mean, std, _ = return_stats((float(b["close"]) for b in bars), floor)
    return mean, std


def compute_baseline_sync(
    market_id: str,
    lookback_days: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Union[Baseline, InsufficientData]:
    """Compute and store one market's baseline; nothing is written when data is insufficient."""
    now = now or datetime.now(timezone.utc)
    lookback_days = lookback_days or settings.baseline_lookback_days

    snapshots = SnapshotQueries.get_snapshots_range(
        now - timedelta(days=lookback_days), now, market_id=market_id
    )
    mean_min, std_min, samples = return_stats(
        (float(s["price"]) for s in snapshots), settings.baseline_std_floor
    )
    if samples < settings.baseline_min_samples:
        return InsufficientData(
            market_id=market_id,
            reason=f"{samples} return samples, need {settings.baseline_min_samples}",
            sample_count=samples,
        )

    mean_hour, std_hour = _bar_scale_stats(
        market_id, Granularity.HOUR, settings.baseline_hourly_lookback_days, now
    )
    mean_day, std_day = _bar_scale_stats(
        market_id, Granularity.DAY, settings.baseline_daily_lookback_days, now
    )

    span = snapshots[-1]["ts"] - snapshots[0]["ts"]
    span_minutes = max(span.total_seconds() / 60, 1.0)
    total_volume = sum(float(s.get("volume_since") or 0) for s in snapshots)

    baseline = Baseline(
        market_id=market_id,
        computed_at=now,
        mean_ret_minute=mean_min,
        std_ret_minute=std_min,
        mean_ret_hour=mean_hour,
        std_ret_hour=std_hour,
        mean_ret_day=mean_day,
        std_ret_day=std_day,
        sample_count=samples,
        sample_days=span.total_seconds() / 86400,
        avg_volume_per_minute=safe_div(total_volume, span_minutes),
    )
    BaselineQueries.upsert_baseline(baseline)
    return baseline


async def compute_baseline(
    market_id: str,
    lookback_days: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Union[Baseline, InsufficientData]:
    return await asyncio.to_thread(compute_baseline_sync, market_id, lookback_days, now)


async def compute_all_baselines(now: Optional[datetime] = None) -> dict:
    """
    Recompute baselines for active markets.

    Returns:
        Counts of computed, insufficient and failed markets
    """
    logger.info("Starting baseline computation...")
    markets = await asyncio.to_thread(
        CatalogQueries.get_active_markets, settings.baseline_market_limit
    )

    computed = insufficient = failed = 0
    for market in markets:
        market_id = market["market_id"]
        try:
            result = await compute_baseline(market_id, now=now)
        except Exception as e:
            logger.warning(f"Baseline failed for {market_id}: {e}")
            failed += 1
            continue
        if isinstance(result, InsufficientData):
            insufficient += 1
        else:
            computed += 1

    logger.info(
        f"Baselines: {computed} computed, {insufficient} insufficient, {failed} failed"
    )
    return {"computed": computed, "insufficient": insufficient, "failed": failed}
