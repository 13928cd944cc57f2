import asyncio

import pytest

from apps.collector import main as collector
from apps.collector.main import Job, Shutdown, build_registry, run_job_once, run_ticker, select_jobs


def test_registry_has_one_job_per_concern():
    registry = build_registry()

    assert set(registry) == {
        "sync_catalog",
        "sync_hot_trades",
        "sync_warm_trades",
        "sync_cold_trades",
        "compute_scores",
        "aggregate_hourly",
        "aggregate_daily",
        "platform_metrics",
        "compute_baselines",
        "reprioritize",
        "retention",
    }
    assert registry["sync_hot_trades"].interval_seconds == 15
    assert registry["compute_scores"].interval_seconds == 60
    assert registry["aggregate_daily"].interval_seconds == 86_400


def test_select_jobs_ignores_unknown_names():
    registry = build_registry()

    assert len(select_jobs(registry, None)) == len(registry)
    selected = select_jobs(registry, ["compute_scores", "nope", "retention"])
    assert [j.name for j in selected] == ["compute_scores", "retention"]


@pytest.mark.asyncio
async def test_run_job_once_records_success(store):
    async def handler():
        return {"scored": 3}

    status = await run_job_once(Job("compute_scores", handler, 60))

    assert status["status"] == "ok"
    assert status["result"] == {"scored": 3}
    assert store.status["job:compute_scores"] is status


@pytest.mark.asyncio
async def test_run_job_once_records_failure_without_raising(store):
    async def handler():
        raise RuntimeError("feed down")

    status = await run_job_once(Job("sync_catalog", handler, 120))

    assert status["status"] == "error"
    assert status["error"] == "feed down"
    assert store.status["job:sync_catalog"]["status"] == "error"


@pytest.mark.asyncio
async def test_status_write_failure_is_contained(monkeypatch):
    def broken_upsert(key, value):
        raise RuntimeError("db gone")

    monkeypatch.setattr(collector.StatusQueries, "upsert_status", staticmethod(broken_upsert))

    async def handler():
        return 1

    status = await run_job_once(Job("retention", handler, 10))
    assert status["status"] == "ok"


@pytest.mark.asyncio
async def test_ticker_runs_until_shutdown(store):
    shutdown = Shutdown()
    runs = []

    async def handler():
        runs.append(1)
        if len(runs) == 3:
            shutdown.request()
        return len(runs)

    await asyncio.wait_for(run_ticker(Job("compute_scores", handler, 0), shutdown), timeout=5)

    assert len(runs) == 3
    assert store.status["job:compute_scores"]["result"] == 3
