import math
import random

import pytest

from packages.seismo.analytics import metrics


def test_base_score_curve():
    """Piecewise curve with the documented breakpoints."""
    assert metrics.base_score(0) == 0
    assert metrics.base_score(0.5) == 0.5
    assert metrics.base_score(1) == 1
    assert metrics.base_score(3) == pytest.approx(2.75)
    assert metrics.base_score(5) == 4.5
    assert metrics.base_score(12) == pytest.approx(7.6)
    assert metrics.base_score(20) == 10
    assert metrics.base_score(25) == 10
    # Negative moves score by magnitude
    assert metrics.base_score(-12) == metrics.base_score(12)


def test_base_score_is_monotonic_and_continuous():
    xs = [i / 100 for i in range(0, 3000)]
    scores = [metrics.base_score(x) for x in xs]
    assert all(b >= a for a, b in zip(scores, scores[1:]))
    for bound in (1.0, 5.0, 10.0, 20.0):
        assert metrics.base_score(bound - 1e-9) == pytest.approx(metrics.base_score(bound), abs=1e-6)


def test_volume_multiplier_band():
    # No volume at all
    assert metrics.volume_multiplier(0, 1_000_000, 0.0002, 0.002) == 0
    assert metrics.volume_multiplier(100, 0, 0.0002, 0.002) == 0
    # At or above rHi
    assert metrics.volume_multiplier(3_000, 1_000_000, 0.0002, 0.002) == 1
    assert metrics.volume_multiplier(2_000, 1_000_000, 0.0002, 0.002) == 1
    # Below rLo clamps to 0
    assert metrics.volume_multiplier(100, 1_000_000, 0.0002, 0.002) == 0
    # Inside the band: sqrt of the position
    mid = metrics.volume_multiplier(1_100, 1_000_000, 0.0002, 0.002)
    assert mid == pytest.approx(math.sqrt(0.5))


def test_z_factor():
    assert metrics.z_factor(5, None) == 1.0
    assert metrics.z_factor(5, 0) == 1.0
    assert metrics.z_factor(0, 2) == 0.75
    assert metrics.z_factor(3, 2) == pytest.approx(0.75 + 0.25 * 0.5)
    assert metrics.z_factor(12, 2) == 1.0


def test_reversal_bonus():
    assert metrics.reversal_bonus(0.45, 0.55) == 1.1
    assert metrics.reversal_bonus(0.55, 0.45) == 1.1
    assert metrics.reversal_bonus(0.40, 0.49) == 1.0
    assert metrics.reversal_bonus(0.50, 0.60) == 1.0
    assert metrics.reversal_bonus(None, 0.60) == 1.0


def test_worked_example_scores_8_4():
    """12pp move, full volume multiplier, 6 sigma, crossing 50%."""
    vm = metrics.volume_multiplier(3_000, 1_000_000, 0.0002, 0.002)
    zf = metrics.z_factor(12, 2)
    bonus = metrics.reversal_bonus(0.45, 0.57)

    assert metrics.seismo_score(12, vm, zf, bonus) == 8.4


def test_zero_volume_move_scores_zero():
    vm = metrics.volume_multiplier(0, 50_000, 0.0002, 0.002)
    assert metrics.seismo_score(3, vm) == 0.0


def test_seismo_score_stays_in_range():
    rng = random.Random(20250310)
    for _ in range(2_000):
        move = rng.uniform(-150, 150)
        vm = metrics.volume_multiplier(
            rng.uniform(0, 1e6), rng.choice([0, rng.uniform(1, 1e7)]),
            rng.uniform(1e-5, 0.01), rng.uniform(0.01, 0.5),
        )
        zf = metrics.z_factor(move, rng.choice([None, 0, rng.uniform(0.01, 50)]))
        bonus = metrics.reversal_bonus(rng.random(), rng.random())
        score = metrics.seismo_score(move, vm, zf, bonus)
        assert 0.0 <= score <= 10.0
        assert round(score, 1) == score

    assert metrics.seismo_score(50, float("nan")) == 0.0
    assert metrics.seismo_score(50, float("inf")) == 0.0


def test_price_movement_takes_larger_of_trend_and_whipsaw():
    net, swing, movement = metrics.price_movement(0.50, 0.70, 0.40, 0.52)
    assert net == pytest.approx(2)
    assert swing == pytest.approx(30)
    assert movement == pytest.approx(30)

    net, swing, movement = metrics.price_movement(0.60, 0.60, 0.45, 0.45)
    assert net == pytest.approx(-15)
    assert movement == pytest.approx(15)


def test_returns_and_stats():
    assert metrics.simple_returns([0.5, 0.55, 0.0, 0.2]) == pytest.approx([0.1, -1.0])
    mean, std = metrics.mean_std([1, 3])
    assert (mean, std) == (2, 1)
    assert metrics.mean_std([]) == (0.0, 0.0)

    mean, std, n = metrics.return_stats([0.4, 0.4, 0.4])
    assert (mean, std, n) == (0, 0.001, 2)


def test_quantile_and_ema():
    assert metrics.quantile([], 0.5) == 0
    assert metrics.quantile([1, 2, 3, 4, 5], 0.5) == 3
    assert metrics.quantile([1, 2], 0.4) == pytest.approx(1.4)
    assert metrics.ema(10, None, 0.3) == 10
    assert metrics.ema(10, 20, 0.3) == pytest.approx(17)


def test_priority_score_buckets():
    assert metrics.priority_score(200_000, 0.2, 0.01, 2) == 100
    assert metrics.priority_score(0, 0, None, None) == 15
    assert metrics.priority_score(6_000, 0.03, 0.04, 20) == 20 + 20 + 15 + 5
    # Bounds are exclusive
    assert metrics.priority_score(100_000, 0.1, 0.02, 5) == 35 + 25 + 15 + 7


def test_priority_tier_thresholds():
    assert metrics.priority_tier(70) == "hot"
    assert metrics.priority_tier(69) == "warm"
    assert metrics.priority_tier(40) == "warm"
    assert metrics.priority_tier(39) == "cold"
