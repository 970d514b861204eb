"""Tests for RollingMarketSeries."""
import random
from datetime import datetime, timedelta, timezone

import pytest

from commentator.market_series import (
    Movement,
    Observation,
    RollingMarketSeries,
    TrendBucket,
)

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _record_all(series, prices):
    for i, price in enumerate(prices):
        series.record(T0 + timedelta(minutes=i), price)


def _check_invariants(series):
    observations, movements = series.snapshot()
    assert len(observations) <= series.capacity
    assert len(movements) == max(0, len(observations) - 1)
    for i, movement in enumerate(movements):
        a, b = observations[i].price, observations[i + 1].price
        assert (movement == Movement.UP) == (b > a)
        assert (movement == Movement.DOWN) == (b < a)
        assert (movement == Movement.FLAT) == (b == a)


def test_empty_series():
    """A new series has no observations and no movements."""
    series = RollingMarketSeries(capacity=5)
    assert series.snapshot() == ((), ())
    assert len(series) == 0
    assert series.latest is None
    assert series.latest_movement is None


def test_default_capacity_is_24h_of_5m_points():
    assert RollingMarketSeries().capacity == 288


def test_capacity_must_be_positive():
    with pytest.raises(ValueError, match="capacity must be positive"):
        RollingMarketSeries(capacity=0)
    with pytest.raises(ValueError):
        RollingMarketSeries(capacity=-3)


def test_first_record_has_no_movement():
    series = RollingMarketSeries(capacity=3)
    series.record(T0, 1.5)

    observations, movements = series.snapshot()
    assert observations == (Observation(T0, 1.5),)
    assert movements == ()
    assert series.latest == Observation(T0, 1.5)


def test_movements_derived_from_consecutive_prices():
    series = RollingMarketSeries(capacity=10)
    _record_all(series, [1.0, 2.0, 2.0, 1.0])

    _, movements = series.snapshot()
    assert movements == (Movement.UP, Movement.FLAT, Movement.DOWN)
    assert series.latest_movement == Movement.DOWN


def test_capacity_scenario_evicts_oldest():
    """capacity=3, prices 1.0, 1.0, 2.0, 1.5 -> [1.0, 2.0, 1.5] with [UP, DOWN]."""
    series = RollingMarketSeries(capacity=3)
    _record_all(series, [1.0, 1.0, 2.0, 1.5])

    observations, movements = series.snapshot()
    assert [o.price for o in observations] == [1.0, 2.0, 1.5]
    assert movements == (Movement.UP, Movement.DOWN)


def test_survivors_are_most_recent_in_call_order():
    series = RollingMarketSeries(capacity=4)
    prices = [float(p) for p in range(1, 11)]
    _record_all(series, prices)

    observations, _ = series.snapshot()
    assert len(observations) == 4
    assert [o.price for o in observations] == prices[-4:]
    assert [o.timestamp for o in observations] == [T0 + timedelta(minutes=i) for i in range(6, 10)]


def test_capacity_one_never_has_movements():
    series = RollingMarketSeries(capacity=1)
    _record_all(series, [1.0, 3.0, 2.0])

    observations, movements = series.snapshot()
    assert [o.price for o in observations] == [2.0]
    assert movements == ()


def test_invariants_hold_after_every_record():
    rng = random.Random(42)
    series = RollingMarketSeries(capacity=7)
    for i in range(50):
        # Coarse prices so FLAT segments occur too
        series.record(T0 + timedelta(minutes=i), rng.choice([1.0, 1.5, 2.0, 2.5]))
        _check_invariants(series)
    assert len(series) == 7


def test_reset_clears_and_allows_fresh_start():
    series = RollingMarketSeries(capacity=3)
    _record_all(series, [1.0, 2.0, 3.0, 4.0])

    series.reset()
    assert series.snapshot() == ((), ())
    series.reset()  # idempotent
    assert series.snapshot() == ((), ())

    series.record(T0, 5.0)
    observations, movements = series.snapshot()
    assert [o.price for o in observations] == [5.0]
    assert movements == ()


def test_snapshot_is_stable_and_detached():
    series = RollingMarketSeries(capacity=5)
    _record_all(series, [1.0, 2.0])

    first = series.snapshot()
    second = series.snapshot()
    assert first == second
    assert isinstance(first[0], tuple)
    assert isinstance(first[1], tuple)

    series.record(T0 + timedelta(minutes=5), 3.0)
    assert len(first[0]) == 2  # earlier snapshot unaffected
    assert len(series.snapshot()[0]) == 3


def test_observation_is_immutable():
    obs = Observation(T0, 1.0)
    with pytest.raises(Exception):
        obs.price = 2.0


@pytest.mark.parametrize(
    "percent_change, expected",
    [
        (11, TrendBucket.EXTREME),
        (-11, TrendBucket.EXTREME),
        (10, TrendBucket.POSITIVE),
        (-10, TrendBucket.NEGATIVE),
        (2.0001, TrendBucket.POSITIVE),
        (2, TrendBucket.NEUTRAL),
        (-2, TrendBucket.NEUTRAL),
        (-3, TrendBucket.NEGATIVE),
        (9.99, TrendBucket.POSITIVE),
        (0, TrendBucket.NEUTRAL),
    ],
)
def test_classify_trend_boundaries(percent_change, expected):
    """Thresholds are strict: exactly 10 is only a move, exactly 2 is neutral."""
    assert RollingMarketSeries.classify_trend(percent_change) == expected


def test_classify_trend_custom_thresholds():
    assert RollingMarketSeries.classify_trend(6, strong_threshold=5, move_threshold=1) == TrendBucket.EXTREME
    assert RollingMarketSeries.classify_trend(1.5, strong_threshold=5, move_threshold=1) == TrendBucket.POSITIVE
    assert RollingMarketSeries.classify_trend(-1.5, strong_threshold=5, move_threshold=1) == TrendBucket.NEGATIVE


def test_classify_trend_ignores_buffer_state():
    series = RollingMarketSeries(capacity=3)
    before = series.classify_trend(3)
    _record_all(series, [1.0, 100.0])
    assert series.classify_trend(3) == before == TrendBucket.POSITIVE
