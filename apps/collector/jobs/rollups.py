"""
Aggregation engine: raw snapshots -> hourly bars -> daily bars.

Both roll-ups are idempotent. Ranges are widened to whole buckets before
reading so a re-run over an overlapping range recomputes complete buckets
and overwrites the same keys.
"""

import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Optional

from packages.seismo.models import AggregateBar, Granularity
from packages.seismo.settings import settings
from packages.seismo.storage.queries import BarQueries, SnapshotQueries

logger = logging.getLogger(__name__)

BUCKET_LENGTH = {
    Granularity.HOUR: timedelta(hours=1),
    Granularity.DAY: timedelta(days=1),
}


def bucket_start(ts: datetime, granularity: Granularity) -> datetime:
    ts = ts.astimezone(timezone.utc)
    if granularity == Granularity.DAY:
        return ts.replace(hour=0, minute=0, second=0, microsecond=0)
    return ts.replace(minute=0, second=0, microsecond=0)


def align_range(
    start: datetime,
    end: datetime,
    granularity: Granularity,
) -> tuple[datetime, datetime]:
    """Widen [start, end) outward to whole buckets."""
    aligned_start = bucket_start(start, granularity)
    aligned_end = bucket_start(end, granularity)
    if aligned_end < end:
        aligned_end += BUCKET_LENGTH[granularity]
    return aligned_start, aligned_end


def usd_volume(row: Any, volume_key: str, usd_key: str) -> float:
    """USD volume of a row; legacy rows without it are estimated at the assumed average price."""
    usd = row.get(usd_key)
    if usd is None:
        return float(row.get(volume_key) or 0) * settings.legacy_avg_price
    return float(usd)


def _make_bar(
    market_id: str,
    event_id: str,
    granularity: Granularity,
    start: datetime,
    open_price: float,
    highs: Iterable[float],
    lows: Iterable[float],
    close: float,
    volume: float,
    usd: float,
) -> AggregateBar:
    return AggregateBar(
        market_id=market_id,
        event_id=event_id,
        granularity=granularity,
        bucket_start=start,
        bucket_end=start + BUCKET_LENGTH[granularity],
        open=open_price,
        high=max(highs),
        low=min(lows),
        close=close,
        volume=volume,
        usd_volume=usd,
    )


def bars_from_snapshots(rows: Iterable[dict]) -> list[AggregateBar]:
    """
    Group raw snapshots by (market, hour) into OHLC bars.

    Open/close are the first/last snapshot by time; buckets without
    snapshots produce no bar.
    """
    groups: dict[tuple[str, datetime], list[dict]] = defaultdict(list)
    for row in rows:
        groups[(row["market_id"], bucket_start(row["ts"], Granularity.HOUR))].append(row)

    bars = []
    for (market_id, start), members in groups.items():
        members.sort(key=lambda r: r["ts"])
        prices = [float(r["price"]) for r in members]
        bars.append(_make_bar(
            market_id,
            members[-1]["event_id"],
            Granularity.HOUR,
            start,
            prices[0],
            prices,
            prices,
            prices[-1],
            sum(float(r.get("volume_since") or 0) for r in members),
            sum(usd_volume(r, "volume_since", "usd_volume_since") for r in members),
        ))
    return bars


def bars_from_hourly(rows: Iterable[dict]) -> list[AggregateBar]:
    """Group hourly bars by (market, UTC day) into daily bars."""
    groups: dict[tuple[str, datetime], list[dict]] = defaultdict(list)
    for row in rows:
        groups[(row["market_id"], bucket_start(row["bucket_start"], Granularity.DAY))].append(row)

    bars = []
    for (market_id, start), members in groups.items():
        members.sort(key=lambda r: r["bucket_start"])
        bars.append(_make_bar(
            market_id,
            members[-1]["event_id"],
            Granularity.DAY,
            start,
            float(members[0]["open"]),
            (float(r["high"]) for r in members),
            (float(r["low"]) for r in members),
            float(members[-1]["close"]),
            sum(float(r.get("volume") or 0) for r in members),
            sum(usd_volume(r, "volume", "usd_volume") for r in members),
        ))
    return bars


def aggregate_hourly_range(start: datetime, end: datetime) -> int:
    """Roll raw snapshots in [start, end) into hourly bars. Returns bars written."""
    start, end = align_range(start, end, Granularity.HOUR)
    rows = SnapshotQueries.get_snapshots_range(start, end)
    bars = bars_from_snapshots(rows)
    if bars:
        BarQueries.upsert_bars(bars)
    logger.debug(f"Hourly roll-up {start.isoformat()} -> {end.isoformat()}: {len(bars)} bars")
    return len(bars)


def aggregate_daily_range(start: datetime, end: datetime) -> int:
    """Roll hourly bars in [start, end) into daily bars. Returns bars written."""
    start, end = align_range(start, end, Granularity.DAY)
    rows = BarQueries.get_bars_range(Granularity.HOUR, start, end)
    bars = bars_from_hourly(rows)
    if bars:
        BarQueries.upsert_bars(bars)
    logger.debug(f"Daily roll-up {start.isoformat()} -> {end.isoformat()}: {len(bars)} bars")
    return len(bars)


async def aggregate_hourly(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> int:
    """Hourly roll-up; defaults to the last few hours."""
    now = now or datetime.now(timezone.utc)
    end = end or now
    start = start or end - timedelta(hours=settings.hourly_rollup_lookback_hours)
    logger.info("Running hourly roll-up...")
    written = await asyncio.to_thread(aggregate_hourly_range, start, end)
    logger.info(f"Hourly roll-up complete: {written} bars")
    return written


async def aggregate_daily(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> int:
    """Daily roll-up; defaults to the last couple of days."""
    now = now or datetime.now(timezone.utc)
    end = end or now
    start = start or end - timedelta(days=settings.daily_rollup_lookback_days)
    logger.info("Running daily roll-up...")
    written = await asyncio.to_thread(aggregate_daily_range, start, end)
    logger.info(f"Daily roll-up complete: {written} bars")
    return written
