"""Window price series: raw snapshots or bars, normalized to OHLC points."""

from datetime import datetime
from typing import Optional

from apps.collector.jobs.rollups import bucket_start, usd_volume
from packages.seismo.models import Granularity
from packages.seismo.storage.queries import BarQueries, SnapshotQueries
from packages.seismo.windows import WindowSpec


def _point_from_snapshot(row: dict) -> dict:
    price = float(row["price"])
    return {
        "market_id": row["market_id"],
        "event_id": row["event_id"],
        "ts": row["ts"],
        "open": price,
        "high": price,
        "low": price,
        "close": price,
        "volume": float(row.get("volume_since") or 0),
        "usd_volume": usd_volume(row, "volume_since", "usd_volume_since"),
    }


def _point_from_bar(row: dict) -> dict:
    return {
        "market_id": row["market_id"],
        "event_id": row["event_id"],
        "ts": row["bucket_start"],
        "open": float(row["open"]),
        "high": float(row["high"]),
        "low": float(row["low"]),
        "close": float(row["close"]),
        "volume": float(row.get("volume") or 0),
        "usd_volume": usd_volume(row, "volume", "usd_volume"),
    }


def bar_start(spec: WindowSpec) -> datetime:
    """Start of the bucket holding the window start; a straddling bar belongs to the window."""
    return bucket_start(spec.start, spec.granularity)


def window_points(spec: WindowSpec, market_id: Optional[str] = None) -> list[dict]:
    """Chronological points in the window, from the granularity the window calls for."""
    if spec.granularity == Granularity.RAW:
        rows = SnapshotQueries.get_snapshots_range(spec.start, spec.end, market_id=market_id)
        return [_point_from_snapshot(r) for r in rows]
    rows = BarQueries.get_bars_range(spec.granularity, bar_start(spec), spec.end, market_id=market_id)
    return [_point_from_bar(r) for r in rows]


def anchor_price(spec: WindowSpec, market_id: str) -> Optional[float]:
    """Last known price before the window opens, carried forward as its open."""
    if spec.granularity == Granularity.RAW:
        row = SnapshotQueries.get_latest_snapshot(market_id, before=spec.start)
        return float(row["price"]) if row else None
    row = BarQueries.get_latest_bar(market_id, spec.granularity, before=bar_start(spec))
    return float(row["close"]) if row else None
