from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
import json
import logging

from packages.seismo.models import Event, Market
from packages.seismo.settings import settings

logger = logging.getLogger(__name__)

# Feed timestamps below this are in seconds, above it in milliseconds
_SECONDS_CUTOFF = 10_000_000_000

MIN_CONDITION_ID_LENGTH = 10


@dataclass
class Trade:
    """
    One trade from the trade feed, price normalized to the "Yes" outcome.

    Transient: trades are compressed into snapshots and never stored as-is.
    Fields that failed to parse are left empty so the snapshot builder can
    count the record as malformed.
    """
    market_id: str
    event_id: str
    timestamp: Optional[datetime]
    price: float
    size: float
    side: str
    outcome: str
    dedup_key: str

    @property
    def is_valid(self) -> bool:
        return (
            self.timestamp is not None
            and 0 < self.price <= 1
            and self.size > 0
        )


@dataclass
class CatalogMarket:
    """A market nested under a catalog event."""
    market_id: str
    question: str
    active: bool
    closed: bool
    last_trade_price: float
    best_bid: Optional[float]
    best_ask: Optional[float]
    volume_24h: float

    @property
    def estimated_usd_24h(self) -> float:
        # Markets that never traded are priced at the assumed average
        return self.volume_24h * (self.last_trade_price or settings.legacy_avg_price)

    def to_market(self, event_id: str) -> Market:
        return Market(
            market_id=self.market_id,
            event_id=event_id,
            question=self.question,
            active=self.active,
            closed=self.closed,
            last_trade_price=self.last_trade_price,
            best_bid=self.best_bid,
            best_ask=self.best_ask,
            volume_24h=self.volume_24h,
        )


@dataclass
class CatalogEvent:
    """An event from the catalog feed with its tradable markets."""
    event_id: str
    slug: str
    title: str
    category: Optional[str]
    image: Optional[str]
    active: bool
    closed: bool
    liquidity: float
    volume: float
    volume_24h: float
    markets: list[CatalogMarket] = field(default_factory=list)

    def to_event(self) -> Event:
        return Event(
            event_id=self.event_id,
            slug=self.slug,
            title=self.title,
            category=self.category,
            image=self.image,
            active=self.active,
            closed=self.closed,
            liquidity=self.liquidity,
            volume=self.volume,
            volume_24h=self.volume_24h,
        )


def _to_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value) if value not in (None, "") else default
    except (TypeError, ValueError):
        return default


def _optional_float(value: Any) -> Optional[float]:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Feed timestamp (seconds or milliseconds since epoch) -> aware UTC datetime."""
    try:
        raw = float(value)
    except (TypeError, ValueError):
        return None
    if raw <= 0:
        return None
    if raw < _SECONDS_CUTOFF:
        raw *= 1000
    try:
        return datetime.fromtimestamp(raw / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def parse_trade(raw: dict[str, Any], market_id: str, event_id: str) -> Trade:
    """
    Parse a raw trade record.

    The feed quotes the price of whichever outcome was traded; a "No" trade
    at 0.30 is stored as a "Yes" price of 0.70.
    """
    filler = raw.get("filler") if isinstance(raw.get("filler"), dict) else {}
    outcome = str(raw.get("outcome") or filler.get("outcome") or "Yes")
    price = _to_float(raw.get("price"))
    if price > 0 and outcome.lower() == "no":
        price = 1 - price

    dedup_key = raw.get("transactionHash") or (
        f"{market_id}_{raw.get('timestamp')}_{raw.get('price')}_{raw.get('size')}"
    )

    return Trade(
        market_id=market_id,
        event_id=event_id,
        timestamp=parse_timestamp(raw.get("timestamp")),
        price=price,
        size=_to_float(raw.get("size")),
        side=str(raw.get("side") or "unknown").upper(),
        outcome=outcome,
        dedup_key=str(dedup_key),
    )


def _parse_catalog_market(raw: dict[str, Any]) -> Optional[CatalogMarket]:
    condition_id = raw.get("conditionId") or raw.get("condition_id")
    if not condition_id or len(condition_id) <= MIN_CONDITION_ID_LENGTH:
        return None
    return CatalogMarket(
        market_id=condition_id,
        question=raw.get("question") or "Unknown",
        active=raw.get("active") is not False,
        closed=raw.get("closed") is True,
        last_trade_price=_to_float(raw.get("lastTradePrice")),
        best_bid=_optional_float(raw.get("bestBid")),
        best_ask=_optional_float(raw.get("bestAsk")),
        volume_24h=_to_float(raw.get("volume24hr")),
    )


def parse_catalog_event(raw: dict[str, Any]) -> Optional[CatalogEvent]:
    """
    Parse a catalog event with its nested markets.

    Returns None for events that carry no markets or no 24h volume. The
    event's 24h volume is the sum over its markets.
    """
    raw_markets = raw.get("markets") or []
    if isinstance(raw_markets, str):
        try:
            raw_markets = json.loads(raw_markets)
        except json.JSONDecodeError:
            logger.debug(f"Unparseable markets list on event {raw.get('id')}")
            return None
    if not raw_markets:
        return None

    volume_24h = sum(_to_float(m.get("volume24hr")) for m in raw_markets)
    if volume_24h == 0:
        return None

    event_id = str(raw.get("id") or raw.get("slug") or "")
    if not event_id:
        return None

    markets = []
    for m in raw_markets:
        parsed = _parse_catalog_market(m)
        if parsed:
            markets.append(parsed)

    return CatalogEvent(
        event_id=event_id,
        slug=raw.get("slug") or event_id,
        title=raw.get("title") or raw.get("question") or "Unknown Event",
        category=raw.get("category"),
        image=raw.get("image") or raw.get("icon"),
        active=raw.get("active") is not False,
        closed=raw.get("closed") is True,
        liquidity=_to_float(raw.get("liquidity")),
        volume=_to_float(raw.get("volume")),
        volume_24h=volume_24h,
        markets=markets,
    )
