import logging
from typing import Any, Dict, List, Tuple

from perptrader.config import settings
from perptrader.engine.base_strategy import BaseStrategy
from perptrader.engine.ema_crossover_strategy import EMACrossoverStrategy
from perptrader.engine.trend_breakout_strategy import TrendBreakoutStrategy
from perptrader.models.trade_models import ExitReason, Position
from perptrader.persistence.db import create_position_store
from perptrader.persistence.position_store import PositionStore
from perptrader.providers.delta_rest import DeltaRest
from perptrader.providers.interfaces import EventSink
from perptrader.services.event_bus import EventBus
from perptrader.services.exchange_reconciler import ExchangeReconciler
from perptrader.services.notifier import Notifier
from perptrader.services.order_executor import OrderExecutor
from perptrader.services.position_ledger import PositionLedger
from perptrader.services.scheduler import Scheduler
from perptrader.services.sltp_monitor import SLTPMonitor
from perptrader.services.strategy_runner import StrategyRunner
from perptrader.services.trade_stats import trade_stats

logger = logging.getLogger("trading_engine")


def build_strategy(name: str) -> BaseStrategy:
    if name == TrendBreakoutStrategy.strategy_id:
        return TrendBreakoutStrategy()
    if name == EMACrossoverStrategy.strategy_id:
        return EMACrossoverStrategy()
    raise ValueError(f"Unknown strategy '{name}'")


def strategy_schedule(name: str):
    """(resolution, interval seconds) for a configured strategy."""
    if name == TrendBreakoutStrategy.strategy_id:
        return settings.TREND_RESOLUTION, settings.TREND_INTERVAL_SEC
    return settings.EMA_RESOLUTION, settings.EMA_INTERVAL_SEC


class TradingEngine:
    """Composition root: owns the store, ledger, runners, monitor and scheduler.

    ``exchange`` must provide fetch_candles, current_price, remote_position and
    place_order; tests pass a fake, production uses DeltaRest.
    """

    def __init__(self, exchange=None, store: PositionStore = None, notifier: EventSink = None,
                 symbols: List[str] = None, strategies: List[str] = None):
        self.exchange = exchange or DeltaRest()
        self.store = store or create_position_store(settings.DATABASE_URL)
        self.events = EventBus()
        self.notifier = notifier or Notifier(settings.NOTIFIER_WEBHOOK)
        self.events.subscribe(self.notifier.publish)
        self.symbols = symbols or settings.symbol_list()

        self.reconciler = ExchangeReconciler(self.exchange)
        self.ledger = PositionLedger(self.store, self.reconciler, price_source=self.exchange, events=self.events)
        self.monitor = SLTPMonitor(self.ledger, self.exchange, events=self.events, orders=self.exchange)
        self.executor = OrderExecutor(self.exchange)

        self.scheduler = Scheduler()
        self.runners: Dict[str, StrategyRunner] = {}
        for name in strategies or settings.strategy_list():
            resolution, interval = strategy_schedule(name)
            runner = StrategyRunner(build_strategy(name), self.exchange, self.ledger, orders=self.exchange,
                                    events=self.events, symbols=self.symbols, resolution=resolution)
            self.runners[name] = runner
            self.scheduler.add(f"signals:{name}", interval, runner.run_once)
        self.scheduler.add("sltp_monitor", settings.SLTP_INTERVAL_SEC, self.monitor.check_once)
        self._connected = False

    @property
    def running(self) -> bool:
        return self.scheduler.running

    async def connect(self):
        if self._connected:
            return
        await self.store.connect()
        self._connected = True
        await self.ledger.recover()

    async def start(self):
        if self.running:
            logger.info("Trading engine already running")
            return
        await self.connect()
        self.scheduler.start()
        logger.info(f"Trading engine started: strategies={list(self.runners)} symbols={self.symbols}")

    async def stop(self):
        if not self.running:
            return
        await self.scheduler.stop()
        await self.events.drain()
        logger.info("Trading engine stopped")

    async def shutdown(self):
        await self.stop()
        await self.events.drain()
        for resource in (self.exchange, self.notifier):
            close = getattr(resource, "close", None)
            if close is not None:
                await close()
        if self._connected:
            await self.store.disconnect()
            self._connected = False

    async def close_position(self, position_id: str, exit_price: float) -> Tuple[Position, bool]:
        """Manual close: record it in the ledger, then flatten the venue position."""
        position = await self.ledger.close(position_id, exit_price, ExitReason.MANUAL)
        return position, await self.executor.place_exit(position)

    async def stats(self) -> Dict[str, Any]:
        return trade_stats(await self.ledger.closed_positions())

    def status(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "symbols": self.symbols,
            "scheduler": self.scheduler.status(),
            "runners": {n: r.status() for n, r in self.runners.items()},
        }
