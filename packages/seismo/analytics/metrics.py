import math
from typing import Iterable, Optional, Sequence

# Piecewise base-score curve: (lower bound pp, score at bound, slope)
BASE_SCORE_SEGMENTS = (
    (1.0, 1.0, 0.875),
    (5.0, 4.5, 0.5),
    (10.0, 7.0, 0.3),
)
BASE_SCORE_CAP_PP = 20.0
MAX_SCORE = 10.0

Z_FLOOR = 0.75
Z_FULL_AT = 3.0


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def safe_div(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Divide, returning `default` for zero or non-finite denominators/results."""
    if not denominator or not math.isfinite(denominator):
        return default
    result = numerator / denominator
    return result if math.isfinite(result) else default


def round_half_up(value: float, digits: int = 1) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def base_score(abs_move_pp: float) -> float:
    """
    Map a movement in percentage points onto the 0-10 base curve.

    Linear below 1pp, then progressively flatter segments, capped at 10 from 20pp.
    Example: 12pp -> 7 + (12 - 10) * 0.3 = 7.6
    """
    x = abs(abs_move_pp)
    if x >= BASE_SCORE_CAP_PP:
        return MAX_SCORE
    score = x
    for lower, at_lower, slope in BASE_SCORE_SEGMENTS:
        if x >= lower:
            score = at_lower + (x - lower) * slope
    return score


def volume_share(top_market_usd: float, platform_usd: float) -> float:
    if platform_usd <= 0:
        return 0.0
    return safe_div(top_market_usd, platform_usd)


def volume_multiplier(
    top_market_usd: float,
    platform_usd: float,
    r_lo: float,
    r_hi: float,
) -> float:
    """
    sqrt of where the event's volume share sits inside the [rLo, rHi] band.

    0 when there is no volume, 1 at or above rHi.
    """
    r = volume_share(top_market_usd, platform_usd)
    if r <= 0:
        return 0.0
    if r >= r_hi:
        return 1.0
    span = r_hi - r_lo
    if span <= 0:
        return 0.0
    return math.sqrt(clamp((r - r_lo) / span, 0.0, 1.0))


def z_factor(abs_move_pp: float, stdev_pp: Optional[float]) -> float:
    """
    Dampen moves that sit within the market's normal volatility.

    Never below 0.75; 1.0 once the move is 3 stddevs or more. Without a
    baseline the move is not dampened.
    """
    if stdev_pp is None or stdev_pp <= 0:
        return 1.0
    z = abs(abs_move_pp) / stdev_pp
    return clamp(Z_FLOOR + (1.0 - Z_FLOOR) * min(z / Z_FULL_AT, 1.0), Z_FLOOR, 1.0)


def crossed_midpoint(open_price: Optional[float], close_price: Optional[float]) -> bool:
    """True when the price ended on the other side of 50% from where it began."""
    if open_price is None or close_price is None:
        return False
    return (open_price < 0.5) != (close_price < 0.5)


def reversal_bonus(
    open_price: Optional[float],
    close_price: Optional[float],
    bonus: float = 1.1,
) -> float:
    return bonus if crossed_midpoint(open_price, close_price) else 1.0


def seismo_score(
    abs_move_pp: float,
    vol_multiplier: float,
    zf: float = 1.0,
    bonus: float = 1.0,
) -> float:
    raw = base_score(abs_move_pp) * vol_multiplier * zf * bonus
    if not math.isfinite(raw):
        return 0.0
    return clamp(round_half_up(raw, 1), 0.0, MAX_SCORE)


def price_movement(
    open_price: float,
    high: float,
    low: float,
    close_price: float,
) -> tuple[float, float, float]:
    """
    Return (net change pp, swing pp, movement pp).

    Movement is the larger of the directional change and the whipsaw range.
    """
    net = (close_price - open_price) * 100
    swing = (high - low) * 100
    return net, swing, max(abs(net), swing)


def simple_returns(prices: Iterable[float]) -> list[float]:
    """Consecutive (curr - prev) / prev, skipping non-positive previous prices."""
    returns = []
    prev = None
    for price in prices:
        if prev is not None and prev > 0:
            returns.append((price - prev) / prev)
        prev = price
    return returns


def mean_std(values: Sequence[float]) -> tuple[float, float]:
    """Mean and population standard deviation."""
    if not values:
        return 0.0, 0.0
    n = len(values)
    mean = sum(values) / n
    variance = sum((x - mean) ** 2 for x in values) / n
    return mean, math.sqrt(variance)


def return_stats(prices: Iterable[float], std_floor: float = 0.001) -> tuple[float, float, int]:
    """(mean, floored stddev, sample count) of the simple returns of a price series."""
    returns = simple_returns(prices)
    mean, std = mean_std(returns)
    return mean, max(std, std_floor), len(returns)


def quantile(sorted_values: Sequence[float], p: float) -> float:
    """Linear-interpolated quantile of an ascending sequence."""
    if not sorted_values:
        return 0.0
    idx = (len(sorted_values) - 1) * p
    lo = math.floor(idx)
    hi = math.ceil(idx)
    if lo == hi:
        return sorted_values[lo]
    w = idx - lo
    return sorted_values[lo] * (1 - w) + sorted_values[hi] * w


def ema(value: float, previous: Optional[float], alpha: float) -> float:
    """Exponential moving average step; seeds with `value` when there is no history."""
    if previous is None:
        return value
    return alpha * value + (1 - alpha) * previous


# =============================================================================
# Market prioritization
# =============================================================================

# (exclusive lower bound, points); first match wins
VOLUME_POINTS = ((100_000, 40), (50_000, 35), (10_000, 30), (5_000, 20), (1_000, 10))
VOLATILITY_POINTS = ((0.1, 30), (0.05, 25), (0.02, 20), (0.01, 10))
# (exclusive upper bound, points)
SPREAD_POINTS = ((0.02, 20), (0.05, 15), (0.1, 10))
RECENCY_POINTS = ((5, 10), (15, 7), (30, 5))

DEFAULT_SPREAD = 0.1


def _bucket_above(value: float, table: tuple, floor_points: int) -> int:
    for bound, points in table:
        if value > bound:
            return points
    return floor_points


def _bucket_below(value: float, table: tuple, floor_points: int) -> int:
    for bound, points in table:
        if value < bound:
            return points
    return floor_points


def priority_score(
    usd_volume_24h: float,
    volatility: float,
    spread: Optional[float],
    minutes_since_last: Optional[float],
) -> int:
    """
    0-100 weighted activity score.

    volume 0-40, realized volatility 0-30, spread (tighter is better) 0-20,
    recency of the last snapshot 0-10.
    """
    score = _bucket_above(usd_volume_24h, VOLUME_POINTS, 5)
    score += _bucket_above(volatility, VOLATILITY_POINTS, 5)
    score += _bucket_below(spread if spread is not None else DEFAULT_SPREAD, SPREAD_POINTS, 5)
    if minutes_since_last is not None:
        score += _bucket_below(minutes_since_last, RECENCY_POINTS, 0)
    return score


def priority_tier(score: int, hot_min: int = 70, warm_min: int = 40) -> str:
    if score >= hot_min:
        return "hot"
    if score >= warm_min:
        return "warm"
    return "cold"
