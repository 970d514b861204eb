"""Bounded rolling price history with per-segment movement tags.

One RollingMarketSeries belongs to one tracking session. Each poll tick
records a single observation; the series keeps at most ``capacity`` of them
(oldest evicted first) together with an UP/DOWN/FLAT tag for every
consecutive pair, so ``movements[i]`` always describes the transition from
``observations[i]`` to ``observations[i + 1]``.

Preconditions, not checked at runtime:
- prices are positive finite numbers
- timestamps are non-decreasing between calls (the series never re-sorts)
- percent changes passed to classify_trend are finite (sanitise NaN to 0)
"""
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Deque, Optional, Tuple


DEFAULT_CAPACITY = 288  # 24h of 5-minute points
DEFAULT_STRONG_THRESHOLD = 10.0
DEFAULT_MOVE_THRESHOLD = 2.0


class Movement(str, Enum):
    """Direction of one consecutive pair of observations."""
    UP = "up"
    DOWN = "down"
    FLAT = "flat"


class TrendBucket(str, Enum):
    """Commentary tone selected from a short-window percent change."""
    EXTREME = "extreme"
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


@dataclass(frozen=True)
class Observation:
    """A single (timestamp, price) sample of the tracked asset."""
    timestamp: datetime
    price: float


def _movement_between(previous: float, current: float) -> Movement:
    if current > previous:
        return Movement.UP
    if current < previous:
        return Movement.DOWN
    return Movement.FLAT


class RollingMarketSeries:
    """Capped, insertion-ordered price history and its derived movements."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        """Create an empty series.

        Args:
            capacity: Maximum number of observations kept (must be > 0)
        """
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._capacity = capacity
        # deque maxlen evicts from the left on overflow; movements hold one
        # fewer slot so both sides drop their oldest entry together
        self._observations: Deque[Observation] = deque(maxlen=capacity)
        self._movements: Deque[Movement] = deque(maxlen=capacity - 1)

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._observations)

    @property
    def latest(self) -> Optional[Observation]:
        """Most recent observation, or None when empty."""
        return self._observations[-1] if self._observations else None

    @property
    def latest_movement(self) -> Optional[Movement]:
        """Movement of the most recent segment, or None with fewer than two points."""
        return self._movements[-1] if self._movements else None

    def record(self, timestamp: datetime, price: float) -> None:
        """Append an observation and the movement from the previous price.

        When the series is full the oldest observation and the oldest
        movement are evicted.
        """
        if self._observations:
            self._movements.append(_movement_between(self._observations[-1].price, price))
        self._observations.append(Observation(timestamp=timestamp, price=price))

    def snapshot(self) -> Tuple[Tuple[Observation, ...], Tuple[Movement, ...]]:
        """Return immutable copies of (observations, movements) for charting."""
        return tuple(self._observations), tuple(self._movements)

    def reset(self) -> None:
        """Drop all observations and movements."""
        self._observations.clear()
        self._movements.clear()

    @staticmethod
    def classify_trend(
        percent_change: float,
        strong_threshold: float = DEFAULT_STRONG_THRESHOLD,
        move_threshold: float = DEFAULT_MOVE_THRESHOLD,
    ) -> TrendBucket:
        """Pick a commentary bucket from a signed percent change.

        Comparisons are strict: a change of exactly ``strong_threshold`` is not
        EXTREME and exactly ``move_threshold`` is NEUTRAL.
        """
        if abs(percent_change) > strong_threshold:
            return TrendBucket.EXTREME
        if percent_change > move_threshold:
            return TrendBucket.POSITIVE
        if percent_change < -move_threshold:
            return TrendBucket.NEGATIVE
        return TrendBucket.NEUTRAL

    def __repr__(self) -> str:
        return f"RollingMarketSeries(capacity={self._capacity}, size={len(self._observations)})"
