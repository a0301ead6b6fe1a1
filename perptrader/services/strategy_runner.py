import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from perptrader.config import settings
from perptrader.engine.base_strategy import BaseStrategy
from perptrader.models.candle_models import Candle, CandleSeries
from perptrader.models.event_models import DomainEvent, EventType
from perptrader.models.trade_models import ExitReason, Position, TradeSignal
from perptrader.providers.interfaces import CandleFeed, OrderGateway
from perptrader.services.event_bus import EventBus
from perptrader.services.metrics import signals_counter
from perptrader.services.order_executor import OrderExecutor
from perptrader.services.position_ledger import OpenResult, PositionLedger

logger = logging.getLogger("strategy_runner")


@dataclass
class RunReport:
    signals: List[TradeSignal] = field(default_factory=list)
    opened: List[Position] = field(default_factory=list)
    rejected: List[OpenResult] = field(default_factory=list)
    order_failures: List[Position] = field(default_factory=list)
    skipped_symbols: List[str] = field(default_factory=list)


class StrategyRunner:
    """One strategy over the configured symbols: fetch, detect, open, place order."""

    def __init__(self, strategy: BaseStrategy, feed: CandleFeed, ledger: PositionLedger,
                 orders: OrderGateway = None, events: EventBus = None, symbols: List[str] = None,
                 resolution: str = "1m", window: int = None, fetch_timeout: float = None,
                 order_timeout: float = None):
        self.strategy = strategy
        self.feed = feed
        self.ledger = ledger
        self.events = events
        self.symbols = symbols or settings.symbol_list()
        self.resolution = resolution
        self.window = window or settings.CANDLE_WINDOW
        self.fetch_timeout = fetch_timeout if fetch_timeout is not None else settings.CANDLE_FETCH_TIMEOUT_SEC
        self.executor = OrderExecutor(orders, order_timeout) if orders is not None else None
        self.series: Dict[str, CandleSeries] = {s: CandleSeries(s, self.window) for s in self.symbols}
        if events is not None:
            events.subscribe(self.on_position_closed, EventType.POSITION_CLOSED)

    @property
    def strategy_id(self) -> str:
        return self.strategy.strategy_id

    async def _fetch(self, symbol: str) -> Optional[List[Candle]]:
        try:
            return await asyncio.wait_for(
                self.feed.fetch_candles(symbol, self.resolution, self.window), timeout=self.fetch_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"[{self.strategy_id}] candle fetch for {symbol} timed out after {self.fetch_timeout}s")
        except Exception as e:
            logger.warning(f"[{self.strategy_id}] candle fetch for {symbol} failed: {e}")
        return None

    async def run_once(self) -> RunReport:
        report = RunReport()
        fetched = await asyncio.gather(*(self._fetch(s) for s in self.symbols))
        # evaluation stays in configured symbol order
        for symbol, candles in zip(self.symbols, fetched):
            if candles is None:
                report.skipped_symbols.append(symbol)
                continue
            series = self.series[symbol]
            series.extend(candles)
            result = self.strategy.detect(symbol, series)
            if result.insufficient_data:
                logger.info(f"[{self.strategy_id}] {symbol}: not enough candles ({len(series)}/{self.strategy.min_candles})")
                continue
            for signal in result.signals:
                report.signals.append(signal)
                await self._handle_signal(signal, report)
        return report

    async def _handle_signal(self, signal: TradeSignal, report: RunReport):
        signals_counter.labels(strategy=self.strategy_id, kind=signal.kind.value).inc()
        self._emit(EventType.SIGNAL, {"strategy_id": self.strategy_id, **signal.to_dict()})
        outcome = await self.ledger.open(signal, self.strategy_id)
        if not outcome.ok:
            report.rejected.append(outcome)
            return
        position = outcome.position
        report.opened.append(position)
        if self.executor is None:
            return
        if not await self.executor.place_entry(position):
            # venue refused: close locally at entry so the ledger matches the venue
            await self.ledger.close(position.id, position.entry_price, ExitReason.ORDER_REJECTED)
            report.order_failures.append(position)

    async def on_position_closed(self, event: DomainEvent):
        payload = event.payload
        if payload.get("strategy_id") != self.strategy_id:
            return
        if payload.get("exit_reason") == ExitReason.ORDER_REJECTED.value:
            return
        series = self.series.get(payload.get("symbol"))
        if series is None or series.latest is None:
            return
        self.strategy.note_exit(series.symbol, series.latest.timestamp)

    def _emit(self, event_type: EventType, payload: dict):
        if self.events is not None:
            self.events.emit(DomainEvent(event_type, payload))

    def status(self) -> dict:
        return {
            "strategy": self.strategy.status(),
            "resolution": self.resolution,
            "symbols": {s: len(series) for s, series in self.series.items()},
        }
