"""
Catalog sync job - mirrors events and their markets from the catalog feed.

Newly seen markets get a sync state row with an initial tier estimated from
their 24h USD volume; reprioritization refines it once snapshots exist.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from apps.collector.adapters.polymarket import PolymarketAdapter, get_polymarket_adapter
from packages.seismo.models import SyncTier
from packages.seismo.storage.queries import CatalogQueries, SyncStateQueries

logger = logging.getLogger(__name__)

HOT_INITIAL_USD = 50_000
WARM_INITIAL_USD = 5_000


def initial_tier(usd_24h: float) -> SyncTier:
    if usd_24h > HOT_INITIAL_USD:
        return SyncTier.HOT
    if usd_24h > WARM_INITIAL_USD:
        return SyncTier.WARM
    return SyncTier.COLD


def sync_catalog_sync(adapter: Optional[PolymarketAdapter] = None) -> dict:
    """
    Fetch the catalog and upsert events, markets and initial sync state.

    Returns:
        Counts of events and markets stored and events that failed
    """
    adapter = adapter or get_polymarket_adapter()
    logger.info("Starting catalog sync...")

    events = adapter.fetch_events()

    event_count = market_count = failed = 0
    for event in events:
        try:
            CatalogQueries.upsert_event(event.to_event())
            if event.markets:
                CatalogQueries.upsert_markets(
                    [m.to_market(event.event_id) for m in event.markets]
                )
            for market in event.markets:
                SyncStateQueries.ensure_sync_state(
                    market.market_id, initial_tier(market.estimated_usd_24h).value
                )
        except Exception as e:
            logger.warning(f"Failed to store event {event.event_id}: {e}")
            failed += 1
            continue
        event_count += 1
        market_count += len(event.markets)

    logger.info(f"Catalog sync: {event_count} events, {market_count} markets, {failed} failed")
    return {"events": event_count, "markets": market_count, "failed": failed}


async def sync_catalog(adapter: Optional[PolymarketAdapter] = None) -> dict:
    return await asyncio.to_thread(sync_catalog_sync, adapter)
