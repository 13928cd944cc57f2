from datetime import timedelta

import pytest

from apps.collector.jobs.prioritization import reprioritize, reprioritize_all, reprioritize_sync
from packages.seismo.models import SyncTier

from tests.conftest import T0


def test_busy_volatile_market_is_hot(store):
    store.add_market("m1", best_bid=0.49, best_ask=0.50)
    prices = [0.40, 0.50, 0.42, 0.55, 0.45]
    for i, price in enumerate(prices):
        store.add_snapshot("m1", T0 - timedelta(minutes=42 - 10 * i), price, volume=50_000, usd=30_000)

    result = reprioritize_sync("m1", now=T0)

    # volume 40 + volatility 30 + spread 20 + recency 10
    assert result.score == 100
    assert result.tier == SyncTier.HOT
    assert store.sync_state["m1"]["priority"] == "hot"
    assert store.sync_state["m1"]["priority_score"] == 100


def test_idle_market_is_cold(store):
    store.add_market("m1")

    result = reprioritize_sync("m1", now=T0)

    assert result.score == 15
    assert result.tier == SyncTier.COLD


def test_catalog_volume_stands_in_without_snapshots(store):
    store.add_market("m1", volume_24h=30_000, best_bid=0.45, best_ask=0.48)

    result = reprioritize_sync("m1", now=T0)

    # 15k estimated USD -> 30, flat -> 5, spread 0.03 -> 15
    assert result.score == 50
    assert result.tier == SyncTier.WARM


def test_existing_fetch_time_is_preserved(store):
    store.add_market("m1")
    fetched_at = T0 - timedelta(minutes=3)
    store.ensure_sync_state("m1", "hot")
    store.mark_fetched("m1", fetched_at)

    reprioritize_sync("m1", now=T0)

    assert store.sync_state["m1"]["last_trade_fetch_at"] == fetched_at
    assert store.sync_state["m1"]["priority"] == "cold"


def test_unknown_market(store):
    assert reprioritize_sync("nope", now=T0) is None


@pytest.mark.asyncio
async def test_reprioritize_all_counts_tiers(store, monkeypatch):
    from apps.collector.jobs import prioritization

    store.add_market("a", volume_24h=3)
    store.add_market("b", volume_24h=2)
    store.add_market("broken", volume_24h=1)
    original = prioritization.reprioritize_sync

    def flaky(market_id, now=None):
        if market_id == "broken":
            raise RuntimeError("bad row")
        return original(market_id, now)

    monkeypatch.setattr(prioritization, "reprioritize_sync", flaky)

    assert (await reprioritize("a", now=T0)).tier == SyncTier.COLD
    result = await reprioritize_all(now=T0)

    assert result == {"hot": 0, "warm": 0, "cold": 2, "failed": 1}
