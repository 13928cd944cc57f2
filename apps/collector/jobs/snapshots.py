"""
Snapshot builder.

Compresses raw trades into a sparse, adaptively-sampled price series per
market. A trade becomes a snapshot only when the gate in snapshot_gate.py
says so; the volume of trades in between accumulates into the next snapshot.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from apps.collector.adapters.feed_messages import Trade
from apps.collector.jobs.snapshot_gate import should_write_snapshot
from packages.seismo.models import PriceSnapshot
from packages.seismo.settings import settings
from packages.seismo.storage.queries import SnapshotQueries

logger = logging.getLogger(__name__)


@dataclass
class SnapshotState:
    """Prior state of one market's series plus volume not yet emitted."""
    last_ts: Optional[datetime] = None
    last_price: Optional[float] = None
    pending_volume: float = 0.0
    pending_usd: float = 0.0

    @classmethod
    def from_row(cls, row: Optional[dict]) -> "SnapshotState":
        if not row:
            return cls()
        return cls(last_ts=row["ts"], last_price=float(row["price"]))


def plan_snapshots(
    market_id: str,
    event_id: str,
    trades: Iterable[Trade],
    state: Optional[SnapshotState] = None,
) -> tuple[list[PriceSnapshot], SnapshotState]:
    """
    Decide which trades of one market become snapshots.

    Pure: nothing is read or written. `state` is advanced in place and
    returned so callers can carry it across consecutive batches.
    """
    state = state or SnapshotState()
    ordered = sorted((t for t in trades if t.is_valid), key=lambda t: t.timestamp)

    seen: set[str] = set()
    planned: list[PriceSnapshot] = []
    for trade in ordered:
        # Replays, out-of-order deliveries and exact-timestamp collisions
        if state.last_ts is not None and trade.timestamp <= state.last_ts:
            continue
        if trade.dedup_key in seen:
            continue
        seen.add(trade.dedup_key)

        state.pending_volume += trade.size
        state.pending_usd += trade.size * trade.price

        if not should_write_snapshot(
            last_price=state.last_price,
            last_ts=state.last_ts,
            new_price=trade.price,
            new_ts=trade.timestamp,
            max_interval_seconds=settings.snapshot_max_interval_seconds,
            min_interval_seconds=settings.snapshot_min_interval_seconds,
            min_delta=settings.snapshot_min_delta,
            force_delta=settings.snapshot_force_delta,
        ):
            continue

        planned.append(PriceSnapshot(
            market_id=market_id,
            event_id=trade.event_id or event_id,
            ts=trade.timestamp,
            price=trade.price,
            volume_since=state.pending_volume,
            usd_volume_since=state.pending_usd,
        ))
        state.last_ts = trade.timestamp
        state.last_price = trade.price
        state.pending_volume = 0.0
        state.pending_usd = 0.0

    return planned, state


def _ingest_market(market_id: str, trades: list[Trade]) -> int:
    """Load prior state, plan, insert. Returns snapshots created."""
    prior = SnapshotQueries.get_latest_snapshot(market_id)
    planned, _ = plan_snapshots(market_id, trades[0].event_id, trades, SnapshotState.from_row(prior))
    if not planned:
        return 0
    return SnapshotQueries.insert_snapshots_batch(planned)


def prune_snapshots(now: Optional[datetime] = None) -> int:
    """Delete snapshots past the retention horizon, a few bounded batches per call."""
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(hours=settings.snapshot_retention_hours)
    batch_size = settings.snapshot_prune_batch_size

    total = 0
    for _ in range(settings.snapshot_prune_max_batches):
        deleted = SnapshotQueries.delete_old_snapshots(cutoff, batch_size)
        total += deleted
        if deleted < batch_size:
            break
    return total


async def ingest(trades: Iterable[Trade], now: Optional[datetime] = None) -> dict:
    """
    Turn a batch of trades into snapshots.

    Malformed trades are dropped and counted. A failure on one market is
    logged and the remaining markets are still processed.

    Returns:
        {"created", "total", "dropped", "pruned"}
    """
    trades = list(trades)
    valid = [t for t in trades if t.is_valid]
    dropped = len(trades) - len(valid)
    if dropped:
        logger.debug(f"Dropped {dropped} malformed trades")

    by_market: dict[str, list[Trade]] = defaultdict(list)
    for trade in valid:
        by_market[trade.market_id].append(trade)

    created = 0
    for market_id, market_trades in by_market.items():
        try:
            created += await asyncio.to_thread(_ingest_market, market_id, market_trades)
        except Exception as e:
            logger.warning(f"Snapshot ingest failed for {market_id}: {e}")
            continue

    pruned = 0
    try:
        pruned = await asyncio.to_thread(prune_snapshots, now)
    except Exception as e:
        logger.warning(f"Snapshot pruning failed: {e}")

    return {"created": created, "total": len(trades), "dropped": dropped, "pruned": pruned}
