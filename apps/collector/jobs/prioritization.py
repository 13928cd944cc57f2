"""
Market prioritization.

Assigns each market a sync tier from its recent activity. The tier decides how
often trade sync fetches the market, closing the loop between where intensity
is likely to appear and where data is kept fresh.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from apps.collector.jobs.rollups import usd_volume
from packages.seismo.analytics.metrics import mean_std, priority_score, priority_tier, simple_returns
from packages.seismo.models import Market, PriorityResult, SyncTier
from packages.seismo.settings import settings
from packages.seismo.storage.queries import CatalogQueries, SnapshotQueries, SyncStateQueries

logger = logging.getLogger(__name__)


def reprioritize_sync(market_id: str, now: Optional[datetime] = None) -> Optional[PriorityResult]:
    """Score one market's activity and write its tier. None for unknown markets."""
    now = now or datetime.now(timezone.utc)
    row = CatalogQueries.get_market(market_id)
    if not row:
        return None
    market = Market(**{k: v for k, v in row.items() if k in Market.model_fields})

    day = SnapshotQueries.get_snapshots_range(now - timedelta(hours=24), now, market_id=market_id)
    hour_start = now - timedelta(hours=1)
    last_hour = [s for s in day if s["ts"] >= hour_start]

    usd_24h = sum(usd_volume(s, "volume_since", "usd_volume_since") for s in day)
    if usd_24h <= 0:
        usd_24h = market.volume_24h * settings.legacy_avg_price

    _, volatility = mean_std(simple_returns(float(s["price"]) for s in last_hour))

    minutes_since_last = None
    if last_hour:
        minutes_since_last = (now - last_hour[-1]["ts"]).total_seconds() / 60

    score = priority_score(usd_24h, volatility, market.spread, minutes_since_last)
    tier = priority_tier(score, settings.hot_tier_min_score, settings.warm_tier_min_score)

    SyncStateQueries.set_priority(market_id, tier, score, now)
    return PriorityResult(market_id=market_id, tier=SyncTier(tier), score=score)


async def reprioritize(market_id: str, now: Optional[datetime] = None) -> Optional[PriorityResult]:
    return await asyncio.to_thread(reprioritize_sync, market_id, now)


async def reprioritize_all(now: Optional[datetime] = None) -> dict:
    """Recompute tiers for the most active markets, up to the per-tick limit."""
    logger.info("Reprioritizing markets...")
    markets = await asyncio.to_thread(
        CatalogQueries.get_active_markets, settings.reprioritize_batch_limit
    )

    tiers = {tier.value: 0 for tier in SyncTier}
    failed = 0
    for market in markets:
        market_id = market["market_id"]
        try:
            result = await reprioritize(market_id, now)
        except Exception as e:
            logger.warning(f"Reprioritize failed for {market_id}: {e}")
            failed += 1
            continue
        if result:
            tiers[result.tier.value] += 1

    logger.info(
        f"Priorities updated: {tiers['hot']} hot, {tiers['warm']} warm, "
        f"{tiers['cold']} cold, {failed} failed"
    )
    return {**tiers, "failed": failed}
