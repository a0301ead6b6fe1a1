"""Candle shape helpers used as entry confirmation."""
from typing import Dict

from perptrader.models.candle_models import Candle
from perptrader.models.trade_models import Direction


def analyze_candle(bar: Candle) -> Dict:
    high = bar.high; low = bar.low; open_ = bar.open; close = bar.close
    rng = max(high - low, 1e-9)
    body = abs(close - open_)
    upper_wick = high - max(open_, close)
    lower_wick = min(open_, close) - low
    return {
        "range": rng,
        "body_pct": body / rng,
        "bullish": close > open_,
        "bearish": close < open_,
        "upper_wick_pct": upper_wick / rng,
        "lower_wick_pct": lower_wick / rng
    }

def is_strong_candle(bar: Candle, direction: Direction, min_body_pct: float = 0.5) -> bool:
    """Body covers at least ``min_body_pct`` of the range and points in ``direction``."""
    pa = analyze_candle(bar)
    if pa["body_pct"] < min_body_pct:
        return False
    return pa["bullish"] if direction is Direction.BUY else pa["bearish"]
