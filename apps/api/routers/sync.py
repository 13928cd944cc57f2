"""
Sync router - markets due for a trade fetch, per tier.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from fastapi import APIRouter, Query, Request

from apps.api.limiter import limiter
from packages.seismo.models import SyncState, SyncTier
from packages.seismo.settings import settings
from packages.seismo.storage.queries import SyncStateQueries

router = APIRouter()


class DueMarketResponse(SyncState):
    event_id: str
    question: str


@router.get("/due", response_model=List[DueMarketResponse])
@limiter.limit("60/minute")
async def markets_due(
    request: Request,
    tier: SyncTier = SyncTier.HOT,
    limit: Optional[int] = Query(default=None, ge=1, le=500),
):
    """Markets of a tier whose last fetch is older than the tier's polling interval."""
    interval, default_limit = settings.tier_schedule(tier.value)
    cutoff = datetime.now(timezone.utc) - timedelta(seconds=interval)
    rows = SyncStateQueries.get_markets_due(tier.value, cutoff, limit or default_limit)
    return [DueMarketResponse(**row) for row in rows]
