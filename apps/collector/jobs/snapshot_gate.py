"""Snapshot write-gating used by the snapshot builder."""

from datetime import datetime
from typing import Optional

# Price deltas are compared after rounding so that a move of exactly the
# threshold (0.55 - 0.50) is not lost to float representation error.
_DELTA_PRECISION = 9


def price_delta(new_price: float, last_price: float) -> float:
    return round(abs(new_price - last_price), _DELTA_PRECISION)


def should_write_snapshot(
    *,
    last_price: Optional[float],
    last_ts: Optional[datetime],
    new_price: float,
    new_ts: datetime,
    max_interval_seconds: float,
    min_interval_seconds: float,
    min_delta: float,
    force_delta: float,
) -> bool:
    """
    Decide whether a trade becomes a new snapshot.

    Rules:
    - Always write the market's first-ever snapshot.
    - Write when max_interval_seconds have elapsed since the last snapshot.
    - Write when min_interval_seconds have elapsed and the price moved >= min_delta.
    - Write when the price moved >= force_delta, however little time has passed.
    """
    if last_price is None or last_ts is None:
        return True

    elapsed = (new_ts - last_ts).total_seconds()
    delta = price_delta(new_price, last_price)

    if elapsed >= max_interval_seconds:
        return True
    if elapsed >= min_interval_seconds and delta >= min_delta:
        return True
    return delta >= force_delta
