"""
Tiered trade sync.

Each tier has its own polling cadence: a market is due when its last fetch is
older than the tier interval. Due markets are fetched for the trailing
lookback, normalized and handed to the snapshot builder. Replayed trades are
harmless since the builder skips anything at or before the last snapshot.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from apps.collector.adapters.polymarket import (
    PolymarketAdapter,
    UpstreamFetchError,
    get_polymarket_adapter,
)
from apps.collector.jobs.snapshots import ingest
from packages.seismo.models import SyncTier
from packages.seismo.settings import settings
from packages.seismo.storage.queries import SyncStateQueries

logger = logging.getLogger(__name__)


async def sync_trades_for_tier(
    tier: SyncTier,
    now: Optional[datetime] = None,
    adapter: Optional[PolymarketAdapter] = None,
) -> dict:
    """Fetch and ingest trades for the markets of one tier that are due."""
    tier = SyncTier(tier)
    now = now or datetime.now(timezone.utc)
    adapter = adapter or get_polymarket_adapter()
    interval, limit = settings.tier_schedule(tier.value)

    due = await asyncio.to_thread(
        SyncStateQueries.get_markets_due,
        tier.value,
        now - timedelta(seconds=interval),
        limit,
    )
    since = now - timedelta(hours=settings.trade_fetch_lookback_hours)

    fetched = failed = created = dropped = 0
    for row in due:
        market_id = row["market_id"]
        try:
            trades = await asyncio.to_thread(
                adapter.fetch_trades, market_id, row["event_id"], since
            )
            result = await ingest(trades, now)
            created += result["created"]
            dropped += result["dropped"]
            fetched += 1
        except UpstreamFetchError as e:
            logger.warning(f"Trade fetch failed for {market_id}: {e}")
            failed += 1
        # Stamped even on failure so one broken market cannot hold the head of its tier
        await asyncio.to_thread(SyncStateQueries.mark_fetched, market_id, now)

    if due:
        logger.info(
            f"{tier.value} sync: {fetched} markets, {created} snapshots, "
            f"{dropped} malformed trades, {failed} failed"
        )
    return {"markets": fetched, "created": created, "dropped": dropped, "failed": failed}
