"""
Analytics module for prediction market intensity scoring.

Exports:
- metrics: Pure numeric functions for scoring, baselines and prioritization
"""

from packages.seismo.analytics.metrics import (
    base_score,
    volume_multiplier,
    z_factor,
    reversal_bonus,
    seismo_score,
    price_movement,
    simple_returns,
    mean_std,
    return_stats,
    quantile,
    ema,
    priority_score,
    priority_tier,
)

__all__ = [
    "base_score",
    "volume_multiplier",
    "z_factor",
    "reversal_bonus",
    "seismo_score",
    "price_movement",
    "simple_returns",
    "mean_std",
    "return_stats",
    "quantile",
    "ema",
    "priority_score",
    "priority_tier",
]
