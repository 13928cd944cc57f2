from fastapi import APIRouter, HTTPException, Request

from apps.api.limiter import limiter
from packages.seismo.models import PlatformMetrics
from packages.seismo.storage.queries import PlatformMetricsQueries
from packages.seismo.windows import canonical_label

router = APIRouter()


@router.get("/{window}", response_model=PlatformMetrics)
@limiter.limit("60/minute")
async def latest_metrics(request: Request, window: str):
    """Latest platform volume band for a window."""
    row = PlatformMetricsQueries.get_latest_metrics(canonical_label(window))
    if not row:
        raise HTTPException(status_code=404, detail="No platform metrics for this window")
    return PlatformMetrics(**row)
