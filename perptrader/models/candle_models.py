"""
Candle data structures shared by the indicator engines.
"""
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Deque, Dict, Iterable, List, Optional


@dataclass(frozen=True)
class Candle:
    """Represents a price candle/bar. ``timestamp`` is epoch seconds (UTC)."""
    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @property
    def ts(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp, tz=timezone.utc)

    @classmethod
    def from_dict(cls, raw: Dict) -> "Candle":
        ts = raw.get("time", raw.get("timestamp", raw.get("ts")))
        return cls(
            timestamp=int(ts),
            open=float(raw["open"]),
            high=float(raw["high"]),
            low=float(raw["low"]),
            close=float(raw["close"]),
            volume=float(raw.get("volume") or 0.0),
        )


class CandleSeries:
    """Bounded, timestamp-ordered OHLCV history for one symbol.

    New candles are appended at the end and the oldest candle is evicted once
    ``maxlen`` is reached. A candle with the same timestamp as the latest one
    replaces it (the exchange keeps updating the bar that is still forming);
    candles older than the latest one are ignored.
    """

    def __init__(self, symbol: str, maxlen: int = 500, candles: Iterable[Candle] = ()):
        self.symbol = symbol
        self.maxlen = maxlen
        self._candles: Deque[Candle] = deque(maxlen=maxlen)
        self.extend(candles)

    def append(self, candle: Candle) -> bool:
        if self._candles:
            last = self._candles[-1]
            if candle.timestamp < last.timestamp:
                return False
            if candle.timestamp == last.timestamp:
                self._candles[-1] = candle
                return True
        self._candles.append(candle)
        return True

    def extend(self, candles: Iterable[Candle]) -> int:
        return sum(1 for c in candles if self.append(c))

    def __len__(self) -> int:
        return len(self._candles)

    def __getitem__(self, idx):
        if isinstance(idx, slice):
            return list(self._candles)[idx]
        return self._candles[idx]

    def __iter__(self):
        return iter(self._candles)

    @property
    def candles(self) -> List[Candle]:
        return list(self._candles)

    @property
    def latest(self) -> Optional[Candle]:
        return self._candles[-1] if self._candles else None

    def closes(self) -> List[float]:
        return [c.close for c in self._candles]

    def count_after(self, timestamp: int) -> int:
        """Number of candles strictly newer than ``timestamp``."""
        return sum(1 for c in self._candles if c.timestamp > timestamp)
