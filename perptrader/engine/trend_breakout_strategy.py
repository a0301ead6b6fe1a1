import logging
from typing import Optional

from perptrader.config import settings
from perptrader.engine.base_strategy import BaseStrategy
from perptrader.engine.ema import sma
from perptrader.engine.support_resistance import TrendLine, find_swing_points, fit_trendline, recent
from perptrader.models.candle_models import CandleSeries
from perptrader.models.trade_models import DetectionResult, Direction, TradeSignal, TrendBreakoutReason

logger = logging.getLogger("trend_breakout_strategy")

class TrendBreakoutStrategy(BaseStrategy):
    """Long-period moving average filter plus swing trendline breakout.

    BUY when the latest close is above the MA and breaks above a falling
    resistance line fitted through the most recent swing highs; SELL mirrors
    this below the MA through a rising support line. Swing points are only
    taken from the trailing ``lookback`` candles.
    """
    strategy_id = "trend_breakout"

    def __init__(self, ma_period: int = None, lookback: int = None, swing_window: int = None,
                 swing_points: int = None, stop_loss_pct: float = None, take_profit_pct: float = None,
                 leverage: float = None, cooldown_candles: int = None):
        super().__init__(
            cooldown_candles=settings.COOLDOWN_CANDLES if cooldown_candles is None else cooldown_candles,
            leverage=settings.TREND_LEVERAGE if leverage is None else leverage,
        )
        self.ma_period = ma_period or settings.TREND_MA_PERIOD
        self.lookback = lookback or settings.TREND_LOOKBACK
        self.swing_window = swing_window or settings.TREND_SWING_WINDOW
        self.swing_points = swing_points or settings.TREND_SWING_POINTS
        self.stop_loss_pct = settings.TREND_STOP_LOSS_PCT if stop_loss_pct is None else stop_loss_pct
        self.take_profit_pct = settings.TREND_TAKE_PROFIT_PCT if take_profit_pct is None else take_profit_pct

    @property
    def min_candles(self) -> int:
        return self.ma_period + self.lookback

    def evaluate(self, symbol: str, series: CandleSeries) -> DetectionResult:
        result = DetectionResult(symbol)
        ma = sma(series.closes(), self.ma_period)
        window = series[-self.lookback:]
        highs, lows = find_swing_points(window, self.swing_window)
        resistance = fit_trendline(recent(highs, self.swing_points))
        support = fit_trendline(recent(lows, self.swing_points))
        current = len(window) - 1
        price = window[-1].close

        logger.debug(f"{symbol} close={price:.2f} ma{self.ma_period}={ma:.2f} highs={len(highs)} lows={len(lows)}")

        if price > ma and resistance is not None and resistance.slope < 0:
            level = resistance.value_at(current)
            if price > level:
                result.signals.append(self._build(symbol, Direction.BUY, price, ma, resistance, level))
        elif price < ma and support is not None and support.slope > 0:
            level = support.value_at(current)
            if price < level:
                result.signals.append(self._build(symbol, Direction.SELL, price, ma, support, level))

        for sig in result.signals:
            logger.info(f"{symbol} {sig.direction.value} trendline breakout @ {sig.entry_price:.2f} (line {sig.reason.line_value:.2f})")
        return result

    def _build(self, symbol: str, direction: Direction, price: float, ma: float,
               line: TrendLine, level: float) -> Optional[TradeSignal]:
        sign = direction.sign
        return TradeSignal(
            symbol=symbol,
            direction=direction,
            entry_price=price,
            stop_loss=price * (1 - sign * self.stop_loss_pct),
            take_profit=price * (1 + sign * self.take_profit_pct),
            reason=TrendBreakoutReason(
                moving_average=ma,
                line_value=level,
                line_slope=line.slope,
                swing_points=line.points,
            ),
            leverage=self.leverage,
        )
