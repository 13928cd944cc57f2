"""
Event score computer.

Scores how unusual an event's probability movement is over a window, on a
0-10 scale:

    score = baseScore(|movement|) * volumeMultiplier * zFactor * reversalBonus

where the movement is that of the event's top-moving market, the volume
multiplier places that market's share of platform USD volume inside the
platform band, and the z-factor dampens moves that are normal for the
market. Every computation appends a new immutable score record.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional, Union

from apps.collector.jobs.series import anchor_price, window_points
from packages.seismo.analytics.metrics import (
    base_score,
    price_movement,
    reversal_bonus,
    seismo_score,
    volume_multiplier,
    z_factor,
)
from packages.seismo.models import Baseline, MarketMovement, NoMarkets, PlatformMetrics, Score
from packages.seismo.settings import settings
from packages.seismo.storage.queries import (
    BaselineQueries,
    CatalogQueries,
    PlatformMetricsQueries,
    ScoreQueries,
)
from packages.seismo.windows import WindowSpec, parse_window

logger = logging.getLogger(__name__)


def market_movement(market: dict, spec: WindowSpec) -> Optional[MarketMovement]:
    """
    Movement of one market over the window.

    The open is the last price before the window (carried forward) or, for a
    market first seen inside the window, its first point. Returns None when
    the market has no price at all.
    """
    market_id = market["market_id"]
    points = window_points(spec, market_id=market_id)
    anchor = anchor_price(spec, market_id)
    if not points and anchor is None:
        return None

    open_price = anchor if anchor is not None else points[0]["open"]
    close_price = points[-1]["close"] if points else open_price
    high = max([open_price] + [p["high"] for p in points])
    low = min([open_price] + [p["low"] for p in points])
    net, swing, movement = price_movement(open_price, high, low, close_price)

    return MarketMovement(
        market_id=market_id,
        question=market.get("question") or "Unknown",
        prev_price=open_price,
        curr_price=close_price,
        change=net,
        swing=swing,
        movement=movement,
        volume=sum(p["volume"] for p in points),
        usd_volume=sum(p["usd_volume"] for p in points),
    )


def select_top_mover(movements: list[MarketMovement]) -> Optional[MarketMovement]:
    """
    Largest movement wins, ties to the first encountered.

    When nothing moved, the most traded market stands in so the record still
    names a market.
    """
    top = None
    for m in movements:
        if m.movement > (top.movement if top else 0.0):
            top = m
    if top is not None:
        return top

    busiest = None
    for m in movements:
        if m.volume > (busiest.volume if busiest else 0.0):
            busiest = m
    return busiest


def _volume_band(window: str) -> tuple[float, float, float]:
    """(platform_usd, rLo, rHi) for the window; no platform volume when never computed."""
    row = PlatformMetricsQueries.get_latest_metrics(window)
    if not row:
        return 0.0, settings.platform_default_r_lo, settings.platform_default_r_hi
    metrics = PlatformMetrics(**row)
    r_lo, r_hi = metrics.band
    return metrics.platform_usd, r_lo, r_hi


def _stdev_pp(market_id: str, spec: WindowSpec) -> Optional[float]:
    row = BaselineQueries.get_baseline(market_id)
    if not row:
        return None
    return Baseline(**row).std_for(spec.baseline_scale) * 100


def compute_score_sync(
    event_id: str,
    window: str,
    now: Optional[datetime] = None,
) -> Union[Score, NoMarkets]:
    now = now or datetime.now(timezone.utc)
    spec = parse_window(window, now)

    markets = CatalogQueries.get_markets_for_event(event_id)
    if not markets:
        return NoMarkets(event_id=event_id)

    movements = []
    for market in markets:
        movement = market_movement(market, spec)
        if movement is not None:
            movements.append(movement)

    top = select_top_mover(movements)
    abs_move = top.movement if top else 0.0

    vol_mult = 0.0
    zf = 1.0
    bonus = 1.0
    if top is not None:
        platform_usd, r_lo, r_hi = _volume_band(spec.label)
        vol_mult = volume_multiplier(top.usd_volume, platform_usd, r_lo, r_hi)
        zf = z_factor(abs_move, _stdev_pp(top.market_id, spec))
        bonus = reversal_bonus(top.prev_price, top.curr_price, settings.reversal_bonus)

    movements.sort(key=lambda m: abs(m.change), reverse=True)

    score = Score(
        event_id=event_id,
        window=spec.label,
        ts=now,
        seismo_score=seismo_score(abs_move, vol_mult, zf, bonus),
        base_score=base_score(abs_move),
        volume_multiplier=vol_mult,
        z_factor=zf,
        reversal_bonus=bonus,
        top_market_id=top.market_id if top else None,
        top_market_question=top.question if top else None,
        top_market_change=top.change if top else 0.0,
        top_market_movement=abs_move,
        top_market_prev_price=top.prev_price if top else None,
        top_market_curr_price=top.curr_price if top else None,
        top_market_volume=top.volume if top else 0.0,
        top_market_usd=top.usd_volume if top else 0.0,
        market_movements=movements,
        total_volume=sum(m.volume for m in movements),
        active_markets=sum(1 for m in movements if m.volume > 0),
    )
    ScoreQueries.insert_score(score)
    return score


async def compute_score(
    event_id: str,
    window: str,
    now: Optional[datetime] = None,
) -> Union[Score, NoMarkets]:
    return await asyncio.to_thread(compute_score_sync, event_id, window, now)


async def compute_all_scores(now: Optional[datetime] = None) -> dict:
    """Score the most active events across all configured windows."""
    now = now or datetime.now(timezone.utc)
    logger.info("Computing event scores...")
    events = await asyncio.to_thread(CatalogQueries.get_active_events, settings.score_event_limit)

    scored = no_markets = failed = 0
    for event in events:
        event_id = event["event_id"]
        for window in settings.score_windows:
            try:
                result = await compute_score(event_id, window, now)
            except Exception as e:
                logger.warning(f"Score failed for {event_id} ({window}): {e}")
                failed += 1
                continue
            if isinstance(result, NoMarkets):
                no_markets += 1
            else:
                scored += 1

    logger.info(f"Scores: {scored} written, {no_markets} without markets, {failed} failed")
    return {"scored": scored, "no_markets": no_markets, "failed": failed}
