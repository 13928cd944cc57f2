"""
System router - per-job tick results and storage telemetry from system_status.
"""

import time

from fastapi import APIRouter, Request

from apps.api.limiter import limiter
from packages.seismo.storage.queries import StatusQueries

router = APIRouter()

JOB_KEY_PREFIX = "job:"


@router.get("/status")
@limiter.limit("30/minute")
async def get_system_status(request: Request):
    """
    Last recorded state of every job and the latest storage telemetry.

    `services` holds every status row by key; `failing_jobs` lists job names whose
    last tick failed.
    """
    services = {}
    failing = []
    for row in StatusQueries.get_all_status():
        value = dict(row["value"] or {})
        if row["updated_at"]:
            value["db_updated_at"] = row["updated_at"].timestamp()
        services[row["key"]] = value
        if row["key"].startswith(JOB_KEY_PREFIX) and value.get("status") == "error":
            failing.append(row["key"][len(JOB_KEY_PREFIX):])

    return {
        "services": services,
        "failing_jobs": sorted(failing),
        "timestamp": time.time(),
    }
