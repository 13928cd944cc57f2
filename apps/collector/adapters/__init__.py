# Feed adapters

from apps.collector.adapters.polymarket import (
    PolymarketAdapter,
    UpstreamFetchError,
    get_polymarket_adapter,
)
from apps.collector.adapters.feed_messages import (
    Trade,
    CatalogEvent,
    CatalogMarket,
    parse_trade,
    parse_catalog_event,
)

__all__ = [
    "PolymarketAdapter",
    "UpstreamFetchError",
    "get_polymarket_adapter",
    # Feed record types
    "Trade",
    "CatalogEvent",
    "CatalogMarket",
    "parse_trade",
    "parse_catalog_event",
]
