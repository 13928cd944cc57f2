"""
Platform metrics job.

Builds the self-calibrating volume band that scores normalize against. For a
window, each event is represented by its single most active market; the
distribution of those markets' share of platform USD volume gives the band
[rLo, rHi], smoothed against the previous record with an EMA.
"""

import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Optional

from apps.collector.jobs.series import window_points
from packages.seismo.analytics.metrics import ema, quantile
from packages.seismo.models import PlatformMetrics
from packages.seismo.settings import settings
from packages.seismo.storage.queries import PlatformMetricsQueries
from packages.seismo.windows import parse_window

logger = logging.getLogger(__name__)


def volume_band(shares: list[float]) -> tuple[float, float]:
    """(rLo, rHi) from sorted nonzero volume shares, or the defaults when too few."""
    if len(shares) < settings.platform_min_events:
        return settings.platform_default_r_lo, settings.platform_default_r_hi
    r_lo = quantile(shares, settings.platform_quantile_lo)
    r_hi = max(quantile(shares, settings.platform_quantile_hi), 2 * r_lo)
    return r_lo, r_hi


def compute_metrics_sync(window: str, now: Optional[datetime] = None) -> PlatformMetrics:
    now = now or datetime.now(timezone.utc)
    spec = parse_window(window, now)

    market_usd: dict[str, float] = defaultdict(float)
    market_event: dict[str, str] = {}
    for point in window_points(spec):
        market_usd[point["market_id"]] += point["usd_volume"]
        market_event[point["market_id"]] = point["event_id"]

    platform_usd = sum(market_usd.values())

    event_top: dict[str, float] = {}
    for market_id, usd in market_usd.items():
        event_id = market_event[market_id]
        if usd > event_top.get(event_id, 0.0):
            event_top[event_id] = usd

    shares = []
    if platform_usd > 0:
        shares = sorted(usd / platform_usd for usd in event_top.values() if usd > 0)
    r_lo, r_hi = volume_band(shares)

    previous = PlatformMetricsQueries.get_latest_metrics(spec.label)
    prev_lo = prev_hi = None
    if previous and previous.get("r_lo_ema") is not None and previous.get("r_hi_ema") is not None:
        prev_lo = float(previous["r_lo_ema"])
        prev_hi = float(previous["r_hi_ema"])

    alpha = settings.platform_ema_alpha
    metrics = PlatformMetrics(
        window=spec.label,
        computed_at=now,
        platform_usd=platform_usd,
        r_lo=r_lo,
        r_hi=r_hi,
        r_lo_ema=ema(r_lo, prev_lo, alpha),
        r_hi_ema=ema(r_hi, prev_hi, alpha),
        event_count=len(shares),
    )
    PlatformMetricsQueries.insert_metrics(metrics)
    return metrics


async def compute_metrics(window: str, now: Optional[datetime] = None) -> PlatformMetrics:
    return await asyncio.to_thread(compute_metrics_sync, window, now)


async def compute_all_platform_metrics(now: Optional[datetime] = None) -> dict:
    """Compute metrics for every configured window; a failing window does not stop the rest."""
    now = now or datetime.now(timezone.utc)
    logger.info("Computing platform metrics...")

    results: dict[str, dict] = {}
    for window in settings.platform_metric_windows:
        try:
            metrics = await compute_metrics(window, now)
            results[window] = {
                "platform_usd": metrics.platform_usd,
                "r_lo": metrics.r_lo_ema,
                "r_hi": metrics.r_hi_ema,
                "events": metrics.event_count,
            }
        except Exception as e:
            logger.warning(f"Platform metrics failed for {window}: {e}")
            results[window] = {"error": str(e)}

    logger.info(f"Platform metrics computed for {len(results)} windows")
    return results
