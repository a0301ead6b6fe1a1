import asyncio

import pytest

from perptrader.engine.trend_breakout_strategy import TrendBreakoutStrategy
from perptrader.models.event_models import EventType
from perptrader.models.trade_models import Direction, ExitReason
from perptrader.persistence.position_store import InMemoryPositionStore
from perptrader.services.event_bus import EventBus
from perptrader.services.exchange_reconciler import ExchangeReconciler
from perptrader.services.position_ledger import PositionLedger, RejectReason
from perptrader.services.sltp_monitor import SLTPMonitor
from perptrader.services.strategy_runner import StrategyRunner
from perptrader.tests.fakes import FakeExchange, RecordingSink, breakout_candles, candle


def _runner(exchange, symbols=("SOLUSD",), bus=None):
    bus = bus or EventBus()
    ledger = PositionLedger(InMemoryPositionStore(), ExchangeReconciler(exchange, timeout=0.5),
                            price_source=exchange, events=bus, price_floors={}, price_timeout=0.5)
    strategy = TrendBreakoutStrategy(ma_period=200, lookback=50, swing_window=5, swing_points=3,
                                     stop_loss_pct=0.005, take_profit_pct=0.01, leverage=25, cooldown_candles=5)
    runner = StrategyRunner(strategy, exchange, ledger, orders=exchange, events=bus, symbols=list(symbols),
                            resolution="1m", window=500, fetch_timeout=0.5, order_timeout=0.5)
    return runner, ledger, bus


@pytest.mark.asyncio
async def test_signal_opens_position_and_places_order():
    exchange = FakeExchange(candles={"SOLUSD": breakout_candles()}, prices={"SOLUSD": 152.0})
    sink = RecordingSink()
    bus = EventBus()
    bus.subscribe(sink.publish)
    runner, ledger, _ = _runner(exchange, bus=bus)

    report = await runner.run_once()

    assert len(report.signals) == 1
    assert len(report.opened) == 1
    position = report.opened[0]
    assert position.direction is Direction.BUY
    assert position.strategy_id == "trend_breakout"
    assert exchange.orders == [{"symbol": "SOLUSD", "side": "BUY", "size": 1.0, "leverage": 25}]
    await bus.drain()
    assert sink.types()[:2] == [EventType.SIGNAL, EventType.POSITION_OPENED]


@pytest.mark.asyncio
async def test_second_cycle_does_not_duplicate():
    exchange = FakeExchange(candles={"SOLUSD": breakout_candles()}, prices={"SOLUSD": 152.0})
    runner, ledger, _ = _runner(exchange)
    await runner.run_once()
    report = await runner.run_once()
    assert [r.reason for r in report.rejected] == [RejectReason.DUPLICATE_POSITION]
    assert len(exchange.orders) == 1
    assert len(await ledger.open_positions()) == 1


@pytest.mark.asyncio
async def test_rejected_order_closes_local_position_flat():
    exchange = FakeExchange(candles={"SOLUSD": breakout_candles()}, prices={"SOLUSD": 152.0})
    exchange.order_result = False
    runner, ledger, bus = _runner(exchange)

    report = await runner.run_once()

    assert len(report.order_failures) == 1
    closed = await ledger.get(report.order_failures[0].id)
    assert closed.exit_reason is ExitReason.ORDER_REJECTED
    assert closed.pnl == 0
    assert await ledger.open_positions() == []
    await bus.drain()
    # a venue refusal does not start a cooldown
    assert not runner.strategy.in_cooldown("SOLUSD", runner.series["SOLUSD"])


@pytest.mark.asyncio
async def test_fetch_failure_skips_symbol_and_keeps_order():
    exchange = FakeExchange(candles={"ETHUSD": breakout_candles(), "SOLUSD": breakout_candles()},
                            prices={"ETHUSD": 1520.0, "SOLUSD": 152.0})
    exchange.failing_candles.add("ETHUSD")
    runner, _, _ = _runner(exchange, symbols=("ETHUSD", "SOLUSD"))
    report = await runner.run_once()
    assert report.skipped_symbols == ["ETHUSD"]
    assert [p.symbol for p in report.opened] == ["SOLUSD"]


@pytest.mark.asyncio
async def test_slow_feed_times_out():
    class SlowFeed(FakeExchange):
        async def fetch_candles(self, symbol, resolution, count):
            await asyncio.sleep(1)
            return []

    runner, _, _ = _runner(SlowFeed())
    runner.fetch_timeout = 0.01
    report = await runner.run_once()
    assert report.skipped_symbols == ["SOLUSD"]


@pytest.mark.asyncio
async def test_exit_starts_cooldown():
    exchange = FakeExchange(candles={"SOLUSD": breakout_candles()}, prices={"SOLUSD": 152.0})
    runner, ledger, bus = _runner(exchange)
    position = (await runner.run_once()).opened[0]
    await ledger.close(position.id, position.stop_loss, ExitReason.STOP_LOSS)
    await bus.drain()

    report = await runner.run_once()
    assert report.signals == []
    assert runner.strategy.in_cooldown("SOLUSD", runner.series["SOLUSD"])

    bars = breakout_candles()
    exchange.candles["SOLUSD"] = bars + [candle(250 + i, 150.0) for i in range(5)]
    await runner.run_once()
    assert not runner.strategy.in_cooldown("SOLUSD", runner.series["SOLUSD"])


@pytest.mark.asyncio
async def test_stop_loss_after_entry_flattens_venue_position():
    exchange = FakeExchange(candles={"SOLUSD": breakout_candles()}, prices={"SOLUSD": 152.0})
    runner, ledger, _ = _runner(exchange)
    monitor = SLTPMonitor(ledger, exchange, price_timeout=0.5, orders=exchange, order_timeout=0.5)
    position = (await runner.run_once()).opened[0]

    exchange.prices["SOLUSD"] = position.stop_loss - 0.5
    report = await monitor.check_once()

    assert [p.exit_reason for p in report.closed] == [ExitReason.STOP_LOSS]
    assert [o["side"] for o in exchange.orders] == ["BUY", "SELL"]
    assert exchange.orders[1]["size"] == position.quantity
