from datetime import datetime, timezone

import pytest

from apps.collector.adapters.feed_messages import Trade
from packages.seismo.storage import queries


T0 = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


def make_trade(market_id, ts, price, size=10.0, event_id="evt-1", key=None, outcome="Yes"):
    return Trade(
        market_id=market_id,
        event_id=event_id,
        timestamp=ts,
        price=price,
        size=size,
        side="BUY",
        outcome=outcome,
        dedup_key=key or f"{market_id}-{ts.isoformat()}-{price}-{size}",
    )


class MemoryStore:
    """Keyed in-memory stand-in for the Postgres tables the jobs touch."""

    def __init__(self):
        self.events = {}
        self.markets = {}
        self.snapshots = {}  # (market_id, ts) -> row
        self.bars = {}  # (market_id, granularity, bucket_start) -> row
        self.baselines = {}
        self.platform_metrics = []
        self.scores = []
        self.sync_state = {}
        self.status = {}

    # -- catalog -------------------------------------------------------------

    def add_market(self, market_id, event_id="evt-1", question=None, volume_24h=0.0, **extra):
        row = {
            "market_id": market_id,
            "event_id": event_id,
            "question": question or f"Question {market_id}?",
            "active": True,
            "closed": False,
            "last_trade_price": 0.5,
            "best_bid": None,
            "best_ask": None,
            "volume_24h": volume_24h,
        }
        row.update(extra)
        self.markets[market_id] = row
        self.events.setdefault(event_id, {
            "event_id": event_id, "slug": event_id, "title": event_id,
            "active": True, "closed": False, "volume_24h": 0.0,
        })
        return row

    def upsert_event(self, event):
        self.events[event.event_id] = event.model_dump()

    def upsert_markets(self, markets):
        for m in markets:
            self.markets[m.market_id] = m.model_dump()
        return len(markets)

    def get_market(self, market_id):
        return self.markets.get(market_id)

    def get_markets_for_event(self, event_id):
        return [m for m in self.markets.values() if m["event_id"] == event_id]

    def get_active_events(self, limit=100):
        rows = [e for e in self.events.values() if e.get("active", True)]
        return sorted(rows, key=lambda e: e.get("volume_24h") or 0, reverse=True)[:limit]

    def get_active_markets(self, limit=100):
        rows = [m for m in self.markets.values() if m.get("active", True)]
        return sorted(rows, key=lambda m: m.get("volume_24h") or 0, reverse=True)[:limit]

    # -- snapshots -----------------------------------------------------------

    def add_snapshot(self, market_id, ts, price, volume=0.0, usd=None, event_id="evt-1"):
        self.snapshots[(market_id, ts)] = {
            "market_id": market_id,
            "event_id": event_id,
            "ts": ts,
            "price": price,
            "volume_since": volume,
            "usd_volume_since": usd,
        }

    def get_latest_snapshot(self, market_id, before=None):
        rows = [
            r for (mid, ts), r in self.snapshots.items()
            if mid == market_id and (before is None or ts < before)
        ]
        return max(rows, key=lambda r: r["ts"]) if rows else None

    def insert_snapshots_batch(self, snapshots):
        inserted = 0
        for s in snapshots:
            key = (s.market_id, s.ts)
            if key in self.snapshots:
                continue
            self.snapshots[key] = s.model_dump()
            inserted += 1
        return inserted

    def get_snapshots_range(self, start, end, market_id=None):
        rows = [
            r for r in self.snapshots.values()
            if start <= r["ts"] < end and (market_id is None or r["market_id"] == market_id)
        ]
        return sorted(rows, key=lambda r: (r["market_id"], r["ts"]))

    def delete_old_snapshots(self, cutoff, batch_size):
        old = [k for k, r in self.snapshots.items() if r["ts"] < cutoff][:batch_size]
        for k in old:
            del self.snapshots[k]
        return len(old)

    # -- bars ----------------------------------------------------------------

    def upsert_bars(self, bars):
        for b in bars:
            row = b.model_dump()
            row["granularity"] = b.granularity.value
            self.bars[(b.market_id, b.granularity.value, b.bucket_start)] = row
        return len(bars)

    def get_bars_range(self, granularity, start, end, market_id=None):
        rows = [
            r for r in self.bars.values()
            if r["granularity"] == granularity.value
            and start <= r["bucket_start"] < end
            and (market_id is None or r["market_id"] == market_id)
        ]
        return sorted(rows, key=lambda r: (r["market_id"], r["bucket_start"]))

    def get_latest_bar(self, market_id, granularity, before):
        rows = [
            r for r in self.bars.values()
            if r["market_id"] == market_id
            and r["granularity"] == granularity.value
            and r["bucket_start"] < before
        ]
        return max(rows, key=lambda r: r["bucket_start"]) if rows else None

    # -- derived records -----------------------------------------------------

    def upsert_baseline(self, baseline):
        self.baselines[baseline.market_id] = baseline.model_dump()

    def get_baseline(self, market_id):
        return self.baselines.get(market_id)

    def insert_metrics(self, metrics):
        self.platform_metrics.append(metrics.model_dump())

    def get_latest_metrics(self, window):
        rows = [m for m in self.platform_metrics if m["window"] == window]
        return rows[-1] if rows else None

    def insert_score(self, score):
        self.scores.append(score.model_dump())

    def get_latest_score(self, event_id, window):
        rows = [s for s in self.scores if s["event_id"] == event_id and s["window"] == window]
        return rows[-1] if rows else None

    def get_top_scores(self, window, limit=20):
        latest = {}
        for s in self.scores:
            if s["window"] == window:
                latest[s["event_id"]] = s
        return sorted(latest.values(), key=lambda s: s["seismo_score"], reverse=True)[:limit]

    # -- sync state / status -------------------------------------------------

    def ensure_sync_state(self, market_id, tier):
        self.sync_state.setdefault(market_id, {
            "market_id": market_id,
            "last_trade_fetch_at": datetime(1970, 1, 1, tzinfo=timezone.utc),
            "priority": tier,
            "priority_score": None,
        })

    def set_priority(self, market_id, tier, score, now):
        row = self.sync_state.setdefault(market_id, {
            "market_id": market_id, "last_trade_fetch_at": now,
        })
        if row.get("last_trade_fetch_at") is None:
            row["last_trade_fetch_at"] = now
        row["priority"] = tier
        row["priority_score"] = score

    def mark_fetched(self, market_id, fetched_at):
        if market_id in self.sync_state:
            self.sync_state[market_id]["last_trade_fetch_at"] = fetched_at

    def get_markets_due(self, tier, cutoff, limit=10):
        rows = []
        for s in self.sync_state.values():
            market = self.markets.get(s["market_id"])
            if market is None or s["priority"] != tier:
                continue
            if s["last_trade_fetch_at"] is not None and s["last_trade_fetch_at"] >= cutoff:
                continue
            rows.append({**s, "event_id": market["event_id"], "question": market["question"]})
        rows.sort(key=lambda r: r["last_trade_fetch_at"] or datetime.min.replace(tzinfo=timezone.utc))
        return rows[:limit]

    def upsert_status(self, key, value):
        self.status[key] = value

    def get_all_status(self):
        return [
            {"key": k, "value": v, "updated_at": None}
            for k, v in sorted(self.status.items())
        ]


_PATCHES = {
    queries.CatalogQueries: [
        "upsert_event", "upsert_markets", "get_market", "get_markets_for_event",
        "get_active_events", "get_active_markets",
    ],
    queries.SnapshotQueries: [
        "get_latest_snapshot", "insert_snapshots_batch", "get_snapshots_range",
        "delete_old_snapshots",
    ],
    queries.BarQueries: ["upsert_bars", "get_bars_range", "get_latest_bar"],
    queries.BaselineQueries: ["upsert_baseline", "get_baseline"],
    queries.PlatformMetricsQueries: ["insert_metrics", "get_latest_metrics"],
    queries.ScoreQueries: ["insert_score", "get_latest_score", "get_top_scores"],
    queries.SyncStateQueries: [
        "ensure_sync_state", "set_priority", "mark_fetched", "get_markets_due",
    ],
    queries.StatusQueries: ["upsert_status", "get_all_status"],
}


@pytest.fixture
def store(monkeypatch):
    """Route every query class method to a fresh MemoryStore."""
    mem = MemoryStore()
    for cls, names in _PATCHES.items():
        for name in names:
            monkeypatch.setattr(cls, name, staticmethod(getattr(mem, name)))
    return mem
