from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence


def sma(values: Sequence[float], period: int) -> Optional[float]:
    """Simple average of the trailing ``period`` values, None when too short."""
    if period <= 0 or len(values) < period:
        return None
    return sum(values[-period:]) / period


def ema_step(price: float, prev_ema: float, period: int) -> float:
    alpha = 2.0 / (period + 1)
    return (price - prev_ema) * alpha + prev_ema


def ema_series(values: Sequence[float], period: int) -> List[float]:
    """EMA of ``values`` seeded with the SMA of the first ``period`` values.

    The returned list is aligned to the tail of ``values``: element 0 belongs
    to index ``period - 1`` and the last element to the last value. Returns an
    empty list when fewer than ``period`` values are available.
    """
    if period <= 0 or len(values) < period:
        return []
    ema = [sum(values[:period]) / period]
    for price in values[period:]:
        ema.append(ema_step(price, ema[-1], period))
    return ema


class Trend(str, Enum):
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"


class MarketState(str, Enum):
    TRENDING = "TRENDING"
    RANGING = "RANGING"


@dataclass
class EMAState:
    symbol: str
    timeframe: str
    short_period: int
    long_period: int
    short_ema: float = None
    long_ema: float = None
    prev_short: float = None
    prev_long: float = None
    last_ts: int = None

    def initialize_from_candles(self, candles: list):
        # candles: chronological (old -> new) Candle objects
        closes = [c.close for c in candles]
        short = ema_series(closes, self.short_period)
        long = ema_series(closes, self.long_period)
        if not short or not long:
            self.short_ema = self.long_ema = self.prev_short = self.prev_long = None
            return
        self.short_ema, self.long_ema = short[-1], long[-1]
        if len(short) >= 2 and len(long) >= 2:
            self.prev_short, self.prev_long = short[-2], long[-2]
        else:
            self.prev_short = self.prev_long = None
        self.last_ts = candles[-1].timestamp

    @property
    def ready(self) -> bool:
        return None not in (self.short_ema, self.long_ema, self.prev_short, self.prev_long)

    @property
    def trend(self) -> Optional[Trend]:
        if self.short_ema is None or self.long_ema is None or self.short_ema == self.long_ema:
            return None
        return Trend.BULLISH if self.short_ema > self.long_ema else Trend.BEARISH

    def market_state(self, ranging_threshold: float) -> Optional[MarketState]:
        if self.short_ema is None or not self.long_ema:
            return None
        spread = abs(self.short_ema - self.long_ema) / self.long_ema
        return MarketState.RANGING if spread < ranging_threshold else MarketState.TRENDING
