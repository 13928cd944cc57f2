from datetime import timedelta

import pytest

from apps.collector.jobs.platform_metrics import (
    compute_all_platform_metrics,
    compute_metrics_sync,
    volume_band,
)
from packages.seismo.settings import settings

from tests.conftest import T0


def _seed_events(store, usd_by_event):
    for i, (event_id, usds) in enumerate(usd_by_event.items()):
        for j, usd in enumerate(usds):
            store.add_snapshot(
                f"{event_id}-m{j}", T0 - timedelta(hours=1, minutes=i), 0.5,
                volume=usd * 2, usd=usd, event_id=event_id,
            )


def test_volume_band_defaults_below_ten_events():
    assert volume_band([0.1] * 9) == (0.0002, 0.002)


def test_volume_band_quantiles_and_hi_floor():
    shares = [i / 100 for i in range(1, 11)]
    r_lo, r_hi = volume_band(shares)
    assert r_lo == pytest.approx(0.046)
    # p90 is 0.091, lifted to 2 * rLo
    assert r_hi == pytest.approx(0.092)

    r_lo, r_hi = volume_band([0.05] * 10)
    assert r_lo == pytest.approx(0.05)
    assert r_hi == pytest.approx(0.10)


def test_event_is_represented_by_its_top_market(store):
    _seed_events(store, {"big": [300, 100], "small": [50, 50]})

    metrics = compute_metrics_sync("24h", now=T0)

    assert metrics.platform_usd == 500
    assert metrics.event_count == 2
    # Fewer than 10 events with volume: defaults, EMA seeded with the raw value
    assert (metrics.r_lo, metrics.r_hi) == (0.0002, 0.002)
    assert (metrics.r_lo_ema, metrics.r_hi_ema) == (0.0002, 0.002)
    assert metrics.computed_at == T0
    assert store.platform_metrics[-1]["window"] == "24h"


def test_band_from_distribution_and_ema_smoothing(store):
    _seed_events(store, {f"e{i}": [float(i)] for i in range(1, 13)})

    first = compute_metrics_sync("24h", now=T0)
    assert first.event_count == 12
    assert first.r_hi >= 2 * first.r_lo
    assert first.r_lo_ema == first.r_lo

    store.add_snapshot("e1-m0", T0 - timedelta(minutes=5), 0.5, usd=500, event_id="e1")
    second = compute_metrics_sync("24h", now=T0)

    alpha = settings.platform_ema_alpha
    assert second.r_lo != first.r_lo
    assert second.r_lo_ema == pytest.approx(alpha * second.r_lo + (1 - alpha) * first.r_lo_ema)
    assert second.r_hi_ema == pytest.approx(alpha * second.r_hi + (1 - alpha) * first.r_hi_ema)
    assert len(store.platform_metrics) == 2


def test_no_volume_records_platform_zero(store):
    metrics = compute_metrics_sync("5m", now=T0)

    assert metrics.platform_usd == 0
    assert metrics.event_count == 0
    assert metrics.band == (0.0002, 0.002)


def test_closed_quarter_metrics_are_stamped_at_computation_time(store):
    later = T0 + timedelta(hours=6)

    first = compute_metrics_sync("q:2024-Q1", now=T0)
    second = compute_metrics_sync("q:2024-Q1", now=later)

    assert (first.computed_at, second.computed_at) == (T0, later)
    assert store.get_latest_metrics("q:2024-Q1")["computed_at"] == later


def test_long_window_reads_daily_bars(store):
    store.add_snapshot("m1", T0 - timedelta(hours=1), 0.5, usd=100)

    metrics = compute_metrics_sync("30d", now=T0)

    assert metrics.platform_usd == 0


@pytest.mark.asyncio
async def test_failing_window_does_not_stop_others(store, monkeypatch):
    from apps.collector.jobs import platform_metrics

    original = platform_metrics.compute_metrics_sync

    def flaky(window, now=None):
        if window == "7d":
            raise RuntimeError("boom")
        return original(window, now)

    monkeypatch.setattr(platform_metrics, "compute_metrics_sync", flaky)

    results = await compute_all_platform_metrics(now=T0)

    assert results["7d"] == {"error": "boom"}
    assert set(results) == set(settings.platform_metric_windows)
    assert len(store.platform_metrics) == len(settings.platform_metric_windows) - 1
