import logging
from typing import Dict

from perptrader.models.candle_models import CandleSeries
from perptrader.models.trade_models import DetectionResult

logger = logging.getLogger("base_strategy")

class BaseStrategy:
    """Capability interface consumed by the strategy runner.

    Subclasses implement ``min_candles`` and ``evaluate``; ``detect`` wraps
    them with the data-sufficiency check and the post-exit cooldown. Detectors
    never look at positions: the runner reports exits through ``note_exit``.
    """
    strategy_id: str = "base"

    def __init__(self, cooldown_candles: int = 5, leverage: float = None):
        self.cooldown_candles = cooldown_candles
        self.leverage = leverage
        self._exit_ts: Dict[str, int] = {}

    @property
    def min_candles(self) -> int:
        raise NotImplementedError

    def evaluate(self, symbol: str, series: CandleSeries) -> DetectionResult:
        raise NotImplementedError

    def detect(self, symbol: str, series: CandleSeries) -> DetectionResult:
        if len(series) < self.min_candles:
            logger.debug(f"{self.strategy_id} {symbol}: {len(series)} candles < {self.min_candles}, skipping")
            return DetectionResult(symbol, insufficient_data=True, skipped_reason="insufficient_data")
        if self.in_cooldown(symbol, series):
            return DetectionResult(symbol, skipped_reason="cooldown")
        result = self.evaluate(symbol, series)
        valid = [s for s in result.signals if s.is_valid()]
        if len(valid) != len(result.signals):
            logger.warning(f"{self.strategy_id} {symbol}: dropped {len(result.signals) - len(valid)} signal(s) with stop/target on the wrong side")
            result.signals = valid
        return result

    # -------------------------------
    # Post-exit cooldown
    # -------------------------------

    def note_exit(self, symbol: str, candle_ts: int):
        """Start the cooldown; ``candle_ts`` is the timestamp of the candle the exit happened on."""
        if self.cooldown_candles <= 0 or candle_ts is None:
            return
        self._exit_ts[symbol] = candle_ts
        logger.info(f"{self.strategy_id} {symbol}: exit recorded, cooldown {self.cooldown_candles} candles")

    def in_cooldown(self, symbol: str, series: CandleSeries) -> bool:
        exit_ts = self._exit_ts.get(symbol)
        if exit_ts is None:
            return False
        since = series.count_after(exit_ts)
        if since < self.cooldown_candles:
            logger.info(f"{self.strategy_id} {symbol}: cooldown active ({since}/{self.cooldown_candles} candles)")
            return True
        del self._exit_ts[symbol]
        return False

    def status(self) -> dict:
        return {"strategy_id": self.strategy_id, "min_candles": self.min_candles, "cooldowns": dict(self._exit_ts)}
