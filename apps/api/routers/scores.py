"""
Scores router - latest score per (event, window) and the top-N board.
"""

from typing import List

from fastapi import APIRouter, HTTPException, Query, Request

from apps.api.limiter import limiter
from packages.seismo.models import Score
from packages.seismo.storage.queries import ScoreQueries
from packages.seismo.windows import DEFAULT_WINDOW, canonical_label

router = APIRouter()


@router.get("/top", response_model=List[Score])
@limiter.limit("60/minute")
async def top_scores(
    request: Request,
    window: str = DEFAULT_WINDOW,
    limit: int = Query(default=20, ge=1, le=100),
):
    """Most recent score per event for a window, highest first."""
    rows = ScoreQueries.get_top_scores(canonical_label(window), limit)
    return [Score(**row) for row in rows]


@router.get("/{event_id}", response_model=Score)
@limiter.limit("120/minute")
async def latest_score(request: Request, event_id: str, window: str = DEFAULT_WINDOW):
    """Current score for an event: the most recent record for the window."""
    row = ScoreQueries.get_latest_score(event_id, canonical_label(window))
    if not row:
        raise HTTPException(status_code=404, detail="No score computed for this event and window")
    return Score(**row)
