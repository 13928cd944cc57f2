"""
Pydantic models for snapshots, bars, baselines, platform metrics and scores.
Used for validation and serialization throughout the application.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class Granularity(str, Enum):
    """Source resolution for a window's price series."""
    RAW = "raw"
    HOUR = "hour"
    DAY = "day"


class BaselineScale(str, Enum):
    """Return scale a window is z-scored against."""
    MINUTE = "minute"
    HOUR = "hour"
    DAY = "day"


class SyncTier(str, Enum):
    """Sync-frequency class for a market."""
    HOT = "hot"
    WARM = "warm"
    COLD = "cold"


# =============================================================================
# Catalog
# =============================================================================

class Event(BaseModel):
    """An event (group of markets) from the catalog feed."""
    event_id: str = Field(..., min_length=1)
    slug: str
    title: str
    category: Optional[str] = None
    image: Optional[str] = None
    active: bool = True
    closed: bool = False
    liquidity: Optional[float] = None
    volume: Optional[float] = None
    volume_24h: float = 0.0


class Market(BaseModel):
    """A single binary market belonging to an event."""
    market_id: str = Field(..., min_length=1)
    event_id: str
    question: str
    active: bool = True
    closed: bool = False
    last_trade_price: float = 0.0
    best_bid: Optional[float] = None
    best_ask: Optional[float] = None
    volume_24h: float = 0.0

    @property
    def spread(self) -> Optional[float]:
        if self.best_bid is None or self.best_ask is None:
            return None
        return self.best_ask - self.best_bid


# =============================================================================
# Pipeline records
# =============================================================================

class PriceSnapshot(BaseModel):
    """Adaptively-sampled price point for one market."""
    market_id: str
    event_id: str
    ts: datetime
    price: float = Field(..., ge=0, le=1)
    volume_since: float = Field(default=0.0, ge=0)
    usd_volume_since: float = Field(default=0.0, ge=0)

    @field_validator("price")
    @classmethod
    def validate_price(cls, v: float) -> float:
        """Ensure price is a valid probability (0-1)."""
        return round(v, 6)

    class Config:
        from_attributes = True


class AggregateBar(BaseModel):
    """OHLC + volume for one market over one hour or day bucket."""
    market_id: str
    event_id: str
    granularity: Granularity
    bucket_start: datetime
    bucket_end: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0
    usd_volume: float = 0.0

    class Config:
        from_attributes = True


class Baseline(BaseModel):
    """A market's own historical return dispersion at three scales."""
    market_id: str
    computed_at: datetime
    mean_ret_minute: float
    std_ret_minute: float
    mean_ret_hour: float = 0.0
    std_ret_hour: float
    mean_ret_day: float = 0.0
    std_ret_day: float
    sample_count: int
    sample_days: float
    avg_volume_per_minute: float = 0.0

    def std_for(self, scale: "BaselineScale") -> float:
        return {
            BaselineScale.MINUTE: self.std_ret_minute,
            BaselineScale.HOUR: self.std_ret_hour,
            BaselineScale.DAY: self.std_ret_day,
        }[scale]

    class Config:
        from_attributes = True


class PlatformMetrics(BaseModel):
    """Platform-wide volume reference band for one window."""
    window: str
    computed_at: datetime
    platform_usd: float
    r_lo: float
    r_hi: float
    r_lo_ema: Optional[float] = None
    r_hi_ema: Optional[float] = None
    event_count: int = 0

    @property
    def band(self) -> tuple[float, float]:
        """Smoothed (rLo, rHi), falling back to the raw values."""
        lo = self.r_lo_ema if self.r_lo_ema is not None else self.r_lo
        hi = self.r_hi_ema if self.r_hi_ema is not None else self.r_hi
        return lo, hi

    class Config:
        from_attributes = True


class MarketMovement(BaseModel):
    """One market's price movement over a score window."""
    market_id: str
    question: str
    prev_price: float
    curr_price: float
    change: float  # signed net change, pp
    swing: float = 0.0  # high - low, pp
    movement: float = 0.0  # max(|change|, swing), pp
    volume: float = 0.0
    usd_volume: float = 0.0


class Score(BaseModel):
    """Immutable intensity score for one event over one window."""
    event_id: str
    window: str
    ts: datetime
    seismo_score: float = Field(..., ge=0, le=10)
    base_score: float = 0.0
    volume_multiplier: float = 0.0
    z_factor: float = 1.0
    reversal_bonus: float = 1.0
    top_market_id: Optional[str] = None
    top_market_question: Optional[str] = None
    top_market_change: float = 0.0
    top_market_movement: float = 0.0
    top_market_prev_price: Optional[float] = None
    top_market_curr_price: Optional[float] = None
    top_market_volume: float = 0.0
    top_market_usd: float = 0.0
    market_movements: list[MarketMovement] = Field(default_factory=list)
    total_volume: float = 0.0
    active_markets: int = 0

    class Config:
        from_attributes = True


class SyncState(BaseModel):
    """Per-market fetch bookkeeping consumed by the trade-sync scheduler."""
    market_id: str
    last_trade_fetch_at: Optional[datetime] = None
    priority: SyncTier = SyncTier.COLD
    priority_score: Optional[int] = None

    class Config:
        from_attributes = True


# =============================================================================
# Explicit result values
# =============================================================================

class InsufficientData(BaseModel):
    """Not enough history to compute a result yet; a normal state."""
    market_id: str
    reason: str
    sample_count: int = 0


class NoMarkets(BaseModel):
    """The event has no markets; nothing was scored."""
    event_id: str


class PriorityResult(BaseModel):
    """Outcome of a reprioritization."""
    market_id: str
    tier: SyncTier
    score: int
