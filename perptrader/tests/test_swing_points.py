import pytest
from hypothesis import given, settings as hsettings, strategies as st

from perptrader.engine.support_resistance import (SwingKind, find_swing_points, fit_trendline,
                                                  highest_high, lowest_low, SwingPoint)
from perptrader.models.candle_models import Candle

prices = st.lists(
    st.tuples(st.integers(0, 50), st.integers(0, 50)),
    min_size=0, max_size=60,
)


def _bars(pairs):
    bars = []
    for i, (a, b) in enumerate(pairs):
        low, high = min(a, b), max(a, b) + 1
        bars.append(Candle(i, low, high, low, high))
    return bars


def _mirror(bars):
    return [Candle(c.timestamp, -c.close, -c.low, -c.high, -c.open) for c in bars]


@hsettings(max_examples=200)
@given(prices, st.integers(1, 6))
def test_mirrored_prices_swap_highs_and_lows(pairs, window):
    bars = _bars(pairs)
    highs, lows = find_swing_points(bars, window)
    m_highs, m_lows = find_swing_points(_mirror(bars), window)
    assert [p.index for p in highs] == [p.index for p in m_lows]
    assert [p.index for p in lows] == [p.index for p in m_highs]


@hsettings(max_examples=200)
@given(prices, st.integers(1, 6))
def test_reversed_series_mirrors_indices(pairs, window):
    bars = _bars(pairs)
    n = len(bars)
    highs, lows = find_swing_points(bars, window)
    r_highs, r_lows = find_swing_points(list(reversed(bars)), window)
    assert sorted(n - 1 - p.index for p in r_highs) == [p.index for p in highs]
    assert sorted(n - 1 - p.index for p in r_lows) == [p.index for p in lows]


@given(prices, st.integers(1, 6))
def test_edges_never_qualify(pairs, window):
    bars = _bars(pairs)
    highs, lows = find_swing_points(bars, window)
    for p in highs + lows:
        assert window <= p.index < len(bars) - window


def test_strict_comparison_rejects_ties():
    highs = [1, 2, 3, 4, 5, 9, 5, 4, 3, 2, 9]
    bars = [Candle(i, h - 1, h, h - 1, h - 0.5) for i, h in enumerate(highs)]
    found, _ = find_swing_points(bars, 5)
    # index 5 ties with index 10 on the right side
    assert found == []
    bars[10] = Candle(10, 7, 8.9, 7, 8)
    found, _ = find_swing_points(bars, 5)
    assert [(p.index, p.kind) for p in found] == [(5, SwingKind.HIGH)]


def test_trendline_needs_two_points():
    assert fit_trendline([]) is None
    assert fit_trendline([SwingPoint(3, 10.0, SwingKind.HIGH)]) is None


def test_trendline_least_squares():
    points = [SwingPoint(10, 160.0, SwingKind.HIGH), SwingPoint(22, 157.0, SwingKind.HIGH),
              SwingPoint(34, 154.0, SwingKind.HIGH)]
    line = fit_trendline(points)
    assert line.slope == pytest.approx(-0.25)
    assert line.value_at(49) == pytest.approx(150.25)
    assert line.points == 3


def test_extreme_helpers_exclude_end_index():
    bars = [Candle(i, 10, 10 + i, 10 - i, 10) for i in range(8)]
    assert lowest_low(bars, 7, 5) == 10 - 6
    assert highest_high(bars, 7, 5) == 10 + 6
    assert lowest_low(bars, 0, 5) is None
