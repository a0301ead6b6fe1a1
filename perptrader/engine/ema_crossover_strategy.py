import logging
from typing import Dict, List, Optional

from perptrader.config import settings
from perptrader.engine.base_strategy import BaseStrategy
from perptrader.engine.ema import EMAState, MarketState, Trend
from perptrader.engine.price_action import analyze_candle, is_strong_candle
from perptrader.engine.support_resistance import highest_high, lowest_low
from perptrader.models.candle_models import Candle, CandleSeries
from perptrader.models.trade_models import (
    CrossoverReason, DetectionResult, Direction, PullbackReason, TradeSignal,
)
from perptrader.services.risk_manager import RiskManager

logger = logging.getLogger("ema_crossover_strategy")


def detect_crossover(prev_fast: float, prev_slow: float, fast: float, slow: float) -> Optional[Direction]:
    """BUY when fast moves from <= slow to > slow, SELL when it moves from >= slow to < slow."""
    if prev_fast <= prev_slow and fast > slow:
        return Direction.BUY
    if prev_fast >= prev_slow and fast < slow:
        return Direction.SELL
    return None


class EMACrossoverStrategy(BaseStrategy):
    """Fast/slow EMA crossover plus pullback-to-fast-EMA continuation entries."""
    strategy_id = "ema_crossover"

    def __init__(self, fast_period: int = None, slow_period: int = None, ranging_threshold: float = None,
                 pullback_tolerance: float = None, strong_body_pct: float = None, swing_lookback: int = None,
                 swing_buffer_pct: float = None, rr_ratio: float = None, leverage: float = None,
                 cooldown_candles: int = None, risk_manager: RiskManager = None, timeframe: str = None):
        super().__init__(
            cooldown_candles=settings.COOLDOWN_CANDLES if cooldown_candles is None else cooldown_candles,
            leverage=settings.EMA_LEVERAGE if leverage is None else leverage,
        )
        self.fast_period = fast_period or settings.EMA_FAST
        self.slow_period = slow_period or settings.EMA_SLOW
        self.ranging_threshold = settings.EMA_RANGING_THRESHOLD if ranging_threshold is None else ranging_threshold
        self.pullback_tolerance = settings.EMA_PULLBACK_TOLERANCE if pullback_tolerance is None else pullback_tolerance
        self.strong_body_pct = settings.EMA_STRONG_BODY_PCT if strong_body_pct is None else strong_body_pct
        self.swing_lookback = swing_lookback or settings.EMA_SWING_LOOKBACK
        self.swing_buffer_pct = settings.EMA_SWING_BUFFER_PCT if swing_buffer_pct is None else swing_buffer_pct
        self.rr_ratio = rr_ratio or settings.EMA_RR_RATIO
        self.timeframe = timeframe or settings.EMA_RESOLUTION
        self.risk_manager = risk_manager or RiskManager(settings.ACCOUNT_SIZE, settings.RISK_PER_TRADE, settings.QUANTITY_STEP)
        self.states: Dict[str, EMAState] = {}

    @property
    def min_candles(self) -> int:
        return max(self.slow_period, self.swing_lookback + self.slow_period)

    def state_for(self, symbol: str) -> EMAState:
        if symbol not in self.states:
            self.states[symbol] = EMAState(symbol, self.timeframe, self.fast_period, self.slow_period)
        return self.states[symbol]

    def evaluate(self, symbol: str, series: CandleSeries) -> DetectionResult:
        state = self.state_for(symbol)
        candles = series.candles
        state.initialize_from_candles(candles)
        if not state.ready:
            return DetectionResult(symbol, insufficient_data=True, skipped_reason="ema_not_ready")
        return DetectionResult(symbol, signals=self.signals_from_state(symbol, state, candles))

    def signals_from_state(self, symbol: str, state: EMAState, candles: List[Candle]) -> List[TradeSignal]:
        market = state.market_state(self.ranging_threshold)
        if market is not MarketState.TRENDING:
            logger.debug(f"{symbol}: market {market.value if market else None}, signals suppressed "
                         f"(fast={state.short_ema:.4f} slow={state.long_ema:.4f})")
            return []

        signals: List[TradeSignal] = []
        crossover = self._crossover(symbol, state, candles[-1])
        if crossover:
            signals.append(crossover)
        pullback = self._pullback(symbol, state, candles)
        if pullback:
            signals.append(pullback)
        return signals

    # -------------------------------
    # Crossover
    # -------------------------------

    def _crossover(self, symbol: str, state: EMAState, bar: Candle) -> Optional[TradeSignal]:
        direction = detect_crossover(state.prev_short, state.prev_long, state.short_ema, state.long_ema)
        if direction is None:
            return None
        entry = bar.close
        if direction is Direction.BUY:
            stop = min(state.long_ema * 0.98, entry * 0.97)
        else:
            stop = max(state.long_ema * 1.02, entry * 1.03)
        risk = abs(entry - stop)
        target = entry + direction.sign * self.rr_ratio * risk
        logger.info(
            f"{symbol}: EMA crossover {direction.value} price={entry:.2f} sl={stop:.2f} tgt={target:.2f} "
            f"(prev_fast={state.prev_short:.4f} prev_slow={state.prev_long:.4f} "
            f"fast={state.short_ema:.4f} slow={state.long_ema:.4f})"
        )
        return TradeSignal(
            symbol=symbol,
            direction=direction,
            entry_price=entry,
            stop_loss=stop,
            take_profit=target,
            reason=CrossoverReason(state.short_ema, state.long_ema, state.prev_short, state.prev_long),
            leverage=self.leverage,
        )

    # -------------------------------
    # Pullback
    # -------------------------------

    def _pullback(self, symbol: str, state: EMAState, candles: List[Candle]) -> Optional[TradeSignal]:
        trend = state.trend
        if trend is None:
            return None
        bar = candles[-1]
        fast = state.short_ema
        if abs(bar.close - fast) / fast > self.pullback_tolerance:
            return None
        direction = Direction.BUY if trend is Trend.BULLISH else Direction.SELL
        if not is_strong_candle(bar, direction, self.strong_body_pct):
            return None
        # close must hold on the trend side of the fast EMA
        if (bar.close - fast) * direction.sign <= 0:
            return None

        end = len(candles) - 1
        if direction is Direction.BUY:
            swing = lowest_low(candles, end, self.swing_lookback)
            stop = swing * (1 - self.swing_buffer_pct) if swing is not None else None
        else:
            swing = highest_high(candles, end, self.swing_lookback)
            stop = swing * (1 + self.swing_buffer_pct) if swing is not None else None
        if stop is None:
            return None

        entry = bar.close
        risk = (entry - stop) * direction.sign
        if risk <= 0:
            logger.info(f"{symbol}: pullback {direction.value} discarded, stop {stop:.2f} on wrong side of {entry:.2f}")
            return None
        target = entry + direction.sign * self.rr_ratio * risk
        qty = self.risk_manager.calc_size(entry, stop)
        if qty <= 0:
            logger.info(f"{symbol}: pullback {direction.value} discarded, size rounds to zero (risk/unit {risk:.4f})")
            return None
        logger.info(f"{symbol}: EMA pullback {direction.value} price={entry:.2f} sl={stop:.2f} tgt={target:.2f} qty={qty}")
        return TradeSignal(
            symbol=symbol,
            direction=direction,
            entry_price=entry,
            stop_loss=stop,
            take_profit=target,
            reason=PullbackReason(
                fast_ema=fast,
                slow_ema=state.long_ema,
                swing_price=swing,
                body_pct=analyze_candle(bar)["body_pct"],
                risk_per_unit=risk,
            ),
            leverage=self.leverage,
            quantity=qty,
        )

    def status(self) -> dict:
        data = super().status()
        data["ema"] = {
            s: {"fast": st.short_ema, "slow": st.long_ema, "trend": st.trend.value if st.trend else None}
            for s, st in self.states.items()
        }
        return data
