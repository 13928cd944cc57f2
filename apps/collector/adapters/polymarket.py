"""
Polymarket REST adapter for the two external feeds the pipeline consumes.

Endpoints:
- Catalog: https://gamma-api.polymarket.com/events (events with nested markets)
- Trades: https://data-api.polymarket.com/trades (per-market trade history)

Both are public and need no authentication for read operations.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime
from typing import Any, Optional

import requests

from apps.collector.adapters.feed_messages import (
    CatalogEvent,
    Trade,
    parse_catalog_event,
    parse_trade,
)
from packages.seismo.settings import settings

logger = logging.getLogger(__name__)


class UpstreamFetchError(RuntimeError):
    """A feed was unreachable, timed out, or answered with a non-2xx status."""


class PolymarketAdapter:
    """
    Adapter for the Polymarket catalog and trade feeds.

    Uses synchronous requests; jobs call it from a worker thread.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        rate_limit_delay: Optional[float] = None,
        gamma_base: Optional[str] = None,
        data_base: Optional[str] = None,
    ):
        self.timeout = timeout if timeout is not None else settings.http_timeout_seconds
        self.rate_limit_delay = (
            rate_limit_delay if rate_limit_delay is not None else settings.rate_limit_delay_seconds
        )
        self.gamma_base = (gamma_base or settings.gamma_api_base).rstrip("/")
        self.data_base = (data_base or settings.data_api_base).rstrip("/")
        self.session = requests.Session()
        self.session.headers.update({
            "User-Agent": "seismo-collector/0.1",
            "Accept": "application/json",
        })
        self._last_request_time = 0.0
        self._rate_lock = threading.Lock()

    def _rate_limit(self) -> None:
        """Minimum gap between requests, shared by every thread using this adapter."""
        with self._rate_lock:
            elapsed = time.time() - self._last_request_time
            if elapsed < self.rate_limit_delay:
                time.sleep(self.rate_limit_delay - elapsed)
            self._last_request_time = time.time()

    def _get(self, url: str, params: Optional[dict] = None) -> Any:
        """GET with rate limiting; any transport or status failure becomes UpstreamFetchError."""
        self._rate_limit()

        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.Timeout as e:
            logger.error(f"Timeout fetching {url}")
            raise UpstreamFetchError(f"timeout fetching {url}") from e
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else "?"
            logger.error(f"HTTP error {status} fetching {url}: {e}")
            raise UpstreamFetchError(f"HTTP {status} fetching {url}") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Request error fetching {url}: {e}")
            raise UpstreamFetchError(f"request error fetching {url}: {e}") from e
        except ValueError as e:
            logger.error(f"Invalid JSON from {url}: {e}")
            raise UpstreamFetchError(f"invalid JSON from {url}") from e

    # =========================================================================
    # Trade feed
    # =========================================================================

    def fetch_trades_page(
        self,
        market_id: str,
        event_id: str,
        after: datetime,
        limit: int,
        offset: int = 0,
    ) -> list[Trade]:
        """One page of trades for a market, newer than `after`."""
        params = {
            "market": market_id,
            "limit": limit,
            "after": int(after.timestamp()),
        }
        if offset:
            params["offset"] = offset

        data = self._get(f"{self.data_base}/trades", params)
        if not isinstance(data, list):
            logger.warning(f"Unexpected trades payload for {market_id}: {type(data).__name__}")
            return []

        return [parse_trade(item, market_id, event_id) for item in data if isinstance(item, dict)]

    def fetch_trades(
        self,
        market_id: str,
        event_id: str,
        since: datetime,
        limit: Optional[int] = None,
        max_pages: Optional[int] = None,
    ) -> list[Trade]:
        """
        Fetch trades for a market since `since`, following pagination.

        Args:
            market_id: Market condition id
            event_id: Owning event id (stamped onto each trade)
            since: Lower time bound
            limit: Page size
            max_pages: Stop after this many pages

        Returns:
            Trades in feed order (not necessarily chronological)
        """
        page_size = limit or settings.trade_page_size
        pages = max_pages or settings.trade_max_pages

        trades: list[Trade] = []
        for page in range(pages):
            batch = self.fetch_trades_page(
                market_id, event_id, since, page_size, offset=page * page_size
            )
            trades.extend(batch)
            if len(batch) < page_size:
                break

        logger.debug(f"Fetched {len(trades)} trades for {market_id}")
        return trades

    # =========================================================================
    # Catalog feed
    # =========================================================================

    def fetch_events(
        self,
        max_events: Optional[int] = None,
        page_size: Optional[int] = None,
    ) -> list[CatalogEvent]:
        """
        Page through active events, keeping those with markets and 24h volume.

        A failing page after the first ends pagination with what was gathered;
        a failing first page raises.
        """
        max_events = max_events or settings.catalog_max_events
        page_size = page_size or settings.catalog_page_size

        events: list[CatalogEvent] = []
        offset = 0
        while offset < max_events:
            params = {
                "limit": page_size,
                "offset": offset,
                "active": "true",
                "closed": "false",
            }
            try:
                data = self._get(f"{self.gamma_base}/events", params)
            except UpstreamFetchError:
                if offset == 0:
                    raise
                logger.warning(f"Stopping catalog pagination at offset {offset}")
                break

            if not data or not isinstance(data, list):
                break

            for raw in data:
                try:
                    event = parse_catalog_event(raw)
                except (AttributeError, TypeError) as e:
                    logger.warning(f"Failed to parse event {raw.get('id', 'unknown')}: {e}")
                    continue
                if event:
                    events.append(event)

            if len(data) < page_size:
                break
            offset += page_size

        logger.info(f"Fetched {len(events)} events from catalog")
        return events

    def close(self) -> None:
        """Close the HTTP session."""
        self.session.close()


# Module-level singleton for convenience
_adapter: Optional[PolymarketAdapter] = None


def get_polymarket_adapter() -> PolymarketAdapter:
    """Get or create the Polymarket adapter singleton."""
    global _adapter
    if _adapter is None:
        _adapter = PolymarketAdapter()
    return _adapter
