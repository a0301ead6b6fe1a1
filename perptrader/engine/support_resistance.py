"""
Swing point detection and trendline fitting.

Usage:
    highs, lows = find_swing_points(candles, window=5)
    resistance = fit_trendline(recent(highs, 3))
    level = resistance.value_at(len(candles) - 1) if resistance else None

A candle at index i is a swing high when its high is strictly greater than
the high of each of the ``window`` candles on both sides; swing lows mirror
this on the low. Candles without a full window on both sides never qualify.
"""
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple

import numpy as np

from perptrader.models.candle_models import Candle


class SwingKind(str, Enum):
    HIGH = "HIGH"
    LOW = "LOW"


@dataclass(frozen=True)
class SwingPoint:
    index: int
    price: float
    kind: SwingKind


@dataclass(frozen=True)
class TrendLine:
    slope: float
    intercept: float
    points: int = 2

    def value_at(self, index: int) -> float:
        return self.slope * index + self.intercept


# -------------------------------
# Pivot Detection
# -------------------------------

def is_swing_high(candles: Sequence[Candle], idx: int, window: int) -> bool:
    if idx < window or idx >= len(candles) - window:
        return False
    h = candles[idx].high
    return all(h > candles[idx - i].high and h > candles[idx + i].high for i in range(1, window + 1))


def is_swing_low(candles: Sequence[Candle], idx: int, window: int) -> bool:
    if idx < window or idx >= len(candles) - window:
        return False
    l = candles[idx].low
    return all(l < candles[idx - i].low and l < candles[idx + i].low for i in range(1, window + 1))


def find_swing_points(candles: Sequence[Candle], window: int, start: int = 0) -> Tuple[List[SwingPoint], List[SwingPoint]]:
    """Return (highs, lows) in index order; indices refer to ``candles``.

    ``start`` restricts detection to candles at or after that index (the
    neighbours used for the test may still lie before it).
    """
    highs: List[SwingPoint] = []
    lows: List[SwingPoint] = []
    for i in range(max(start, 0), len(candles)):
        if is_swing_high(candles, i, window):
            highs.append(SwingPoint(i, candles[i].high, SwingKind.HIGH))
        if is_swing_low(candles, i, window):
            lows.append(SwingPoint(i, candles[i].low, SwingKind.LOW))
    return highs, lows


# -------------------------------
# Trendlines
# -------------------------------

def recent(points: Sequence[SwingPoint], count: int) -> List[SwingPoint]:
    return list(points[-count:]) if count > 0 else []


def fit_trendline(points: Sequence[SwingPoint]) -> Optional[TrendLine]:
    """Least-squares line through the points, None for fewer than two."""
    if len(points) < 2:
        return None
    x = np.array([p.index for p in points], dtype=float)
    y = np.array([p.price for p in points], dtype=float)
    slope, intercept = np.polyfit(x, y, 1)
    return TrendLine(float(slope), float(intercept), len(points))


# -------------------------------
# Stop placement helpers
# -------------------------------

def lowest_low(candles: Sequence[Candle], end: int, lookback: int) -> Optional[float]:
    """Lowest low of the ``lookback`` candles before index ``end`` (exclusive)."""
    window = candles[max(0, end - lookback):end]
    return min(c.low for c in window) if window else None


def highest_high(candles: Sequence[Candle], end: int, lookback: int) -> Optional[float]:
    window = candles[max(0, end - lookback):end]
    return max(c.high for c in window) if window else None
