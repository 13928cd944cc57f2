from datetime import datetime, timedelta, timezone

import pytest

from apps.collector.jobs.rollups import (
    aggregate_daily,
    aggregate_daily_range,
    aggregate_hourly,
    aggregate_hourly_range,
    align_range,
    bucket_start,
    usd_volume,
)
from packages.seismo.models import Granularity

from tests.conftest import T0


def _seed_hour(store, market_id, start, prices, usd=None):
    for i, price in enumerate(prices):
        store.add_snapshot(market_id, start + timedelta(minutes=10 * i), price, volume=10, usd=usd)


def test_bucket_start_and_alignment():
    ts = datetime(2025, 3, 10, 12, 34, 56, tzinfo=timezone.utc)
    assert bucket_start(ts, Granularity.HOUR) == datetime(2025, 3, 10, 12, tzinfo=timezone.utc)
    assert bucket_start(ts, Granularity.DAY) == datetime(2025, 3, 10, tzinfo=timezone.utc)

    start, end = align_range(ts, ts + timedelta(minutes=40), Granularity.HOUR)
    assert start == datetime(2025, 3, 10, 12, tzinfo=timezone.utc)
    assert end == datetime(2025, 3, 10, 14, tzinfo=timezone.utc)


def test_legacy_rows_are_estimated_at_average_price():
    assert usd_volume({"volume_since": 100, "usd_volume_since": None}, "volume_since", "usd_volume_since") == 50
    assert usd_volume({"volume_since": 100, "usd_volume_since": 12.5}, "volume_since", "usd_volume_since") == 12.5
    assert usd_volume({"volume": 0, "usd_volume": None}, "volume", "usd_volume") == 0


def test_hourly_rollup_builds_ohlc(store):
    _seed_hour(store, "m1", T0, [0.40, 0.55, 0.35, 0.45], usd=5.0)

    written = aggregate_hourly_range(T0, T0 + timedelta(hours=1))

    assert written == 1
    bar = store.bars[("m1", "hour", T0)]
    assert (bar["open"], bar["high"], bar["low"], bar["close"]) == (0.40, 0.55, 0.35, 0.45)
    assert bar["volume"] == 40
    assert bar["usd_volume"] == 20
    assert bar["bucket_end"] == T0 + timedelta(hours=1)


def test_hourly_rollup_is_idempotent_over_overlapping_ranges(store):
    _seed_hour(store, "m1", T0, [0.40, 0.50])
    _seed_hour(store, "m1", T0 + timedelta(hours=1), [0.50, 0.60])
    _seed_hour(store, "m2", T0, [0.10])

    first = aggregate_hourly_range(T0, T0 + timedelta(hours=2))
    snapshot_of_bars = dict(store.bars)
    # Overlapping, unaligned range: buckets are widened and recomputed whole
    second = aggregate_hourly_range(T0 + timedelta(minutes=30), T0 + timedelta(hours=1, minutes=5))

    assert first == 3
    assert second == 3
    assert store.bars == snapshot_of_bars


def test_hourly_rollup_skips_empty_buckets(store):
    _seed_hour(store, "m1", T0, [0.40])
    _seed_hour(store, "m1", T0 + timedelta(hours=2), [0.45])

    assert aggregate_hourly_range(T0, T0 + timedelta(hours=3)) == 2
    assert ("m1", "hour", T0 + timedelta(hours=1)) not in store.bars


def test_daily_rollup_from_hourly_bars(store):
    day = T0.replace(hour=0)
    _seed_hour(store, "m1", day + timedelta(hours=1), [0.30, 0.35])
    _seed_hour(store, "m1", day + timedelta(hours=5), [0.60, 0.20])
    _seed_hour(store, "m1", day + timedelta(hours=23), [0.25])
    aggregate_hourly_range(day, day + timedelta(days=1))

    assert aggregate_daily_range(day, day + timedelta(days=1)) == 1
    bar = store.bars[("m1", "day", day)]
    assert bar["open"] == 0.30
    assert bar["high"] == 0.60
    assert bar["low"] == 0.20
    assert bar["close"] == 0.25
    assert bar["volume"] == 50
    # Snapshots without USD are estimated at volume * 0.5
    assert bar["usd_volume"] == pytest.approx(25)


def test_daily_rollup_is_idempotent_over_overlapping_ranges(store):
    day = T0.replace(hour=0)
    _seed_hour(store, "m1", day + timedelta(hours=2), [0.30, 0.40])
    _seed_hour(store, "m1", day + timedelta(days=1, hours=3), [0.40, 0.70])
    _seed_hour(store, "m2", day + timedelta(hours=20), [0.10, 0.15])
    aggregate_hourly_range(day, day + timedelta(days=2))

    first = aggregate_daily_range(day, day + timedelta(days=2))
    daily = {k: v for k, v in store.bars.items() if k[1] == "day"}
    second = aggregate_daily_range(day + timedelta(hours=6), day + timedelta(days=1, hours=1))

    assert first == 3
    assert second == 3
    assert {k: v for k, v in store.bars.items() if k[1] == "day"} == daily
    assert store.bars[("m1", "day", day + timedelta(days=1))]["close"] == 0.70


@pytest.mark.asyncio
async def test_async_rollups_default_to_trailing_periods(store):
    now = T0 + timedelta(minutes=30)
    _seed_hour(store, "m1", T0 - timedelta(hours=2), [0.40])
    _seed_hour(store, "m1", T0 - timedelta(hours=5), [0.40])

    assert await aggregate_hourly(now=now) == 1
    assert await aggregate_daily(now=now) == 1
