import asyncio

import pytest

from perptrader.models.event_models import EventType
from perptrader.models.trade_models import (Direction, ExitReason, PositionStatus, TradeSignal,
                                            TrendBreakoutReason)
from perptrader.persistence.position_store import InMemoryPositionStore
from perptrader.services.event_bus import EventBus
from perptrader.services.position_ledger import PositionLedger
from perptrader.services.sltp_monitor import SLTPMonitor
from perptrader.tests.fakes import FakeExchange, RecordingSink

REASON = TrendBreakoutReason(95.0, 99.0, -0.1, 3)


async def _setup(prices=None, direction=Direction.BUY, entry=100.0, sl=99.0, tp=103.0):
    bus = EventBus()
    sink = RecordingSink()
    bus.subscribe(sink.publish)
    ledger = PositionLedger(InMemoryPositionStore(), price_floors={}, events=bus)
    exchange = FakeExchange(prices=prices or {})
    monitor = SLTPMonitor(ledger, exchange, events=bus, proximity_pct=0.01, price_timeout=0.5)
    position = (await ledger.open(TradeSignal("SOLUSD", direction, entry, sl, tp, REASON, quantity=2.0), "trend_breakout")).position
    return ledger, exchange, monitor, position, bus, sink


@pytest.mark.asyncio
async def test_buy_stop_loss_closes_with_negative_pnl():
    ledger, _, monitor, position, bus, sink = await _setup({"SOLUSD": 98.9})

    report = await monitor.check_once()

    assert [p.id for p in report.closed] == [position.id]
    closed = await ledger.get(position.id)
    assert closed.status is PositionStatus.CLOSED
    assert closed.exit_reason is ExitReason.STOP_LOSS
    assert closed.exit_price == 98.9
    assert closed.pnl == pytest.approx((98.9 - 100.0) * 2.0)
    assert closed.pnl < 0
    await bus.drain()
    assert EventType.SL_HIT in sink.types()


@pytest.mark.asyncio
async def test_buy_take_profit():
    ledger, _, monitor, position, bus, sink = await _setup({"SOLUSD": 103.0})
    await monitor.check_once()
    closed = await ledger.get(position.id)
    assert closed.exit_reason is ExitReason.TAKE_PROFIT
    assert closed.pnl == pytest.approx(6.0)
    await bus.drain()
    assert EventType.TP_HIT in sink.types()


@pytest.mark.asyncio
async def test_sell_levels_are_mirrored():
    ledger, exchange, monitor, position, _, _ = await _setup({"SOLUSD": 100.5}, Direction.SELL, 100.0, 101.0, 97.0)
    await monitor.check_once()
    assert (await ledger.get(position.id)).is_open
    exchange.prices["SOLUSD"] = 101.0
    await monitor.check_once()
    closed = await ledger.get(position.id)
    assert closed.exit_reason is ExitReason.STOP_LOSS
    assert closed.pnl == pytest.approx(-2.0)


@pytest.mark.asyncio
async def test_hit_is_handled_exactly_once():
    ledger, _, monitor, position, bus, sink = await _setup({"SOLUSD": 98.0})

    first = await monitor.evaluate(position, 98.0)
    # the stale OPEN snapshot is evaluated again
    second = await monitor.evaluate(position, 97.0)
    third = await monitor.evaluate(first, 97.0)
    report = await monitor.check_once()

    assert first is not None
    assert second is None and third is None
    assert report.closed == []
    assert (await ledger.get(position.id)).exit_price == 98.0
    await bus.drain()
    assert sink.types().count(EventType.SL_HIT) == 1
    assert sink.types().count(EventType.POSITION_CLOSED) == 1


@pytest.mark.asyncio
async def test_concurrent_evaluations_close_once():
    ledger, _, monitor, position, _, _ = await _setup({"SOLUSD": 98.0})
    results = await asyncio.gather(*(monitor.evaluate(position, 98.0) for _ in range(10)))
    assert sum(r is not None for r in results) == 1


@pytest.mark.asyncio
async def test_proximity_warning_is_observational():
    ledger, _, monitor, position, _, _ = await _setup({"SOLUSD": 99.5})
    report = await monitor.check_once()
    assert report.closed == []
    assert [w.level for w in report.warnings] == ["STOP_LOSS"]
    assert (await ledger.get(position.id)).is_open


@pytest.mark.asyncio
async def test_price_failure_skips_symbol():
    ledger, exchange, monitor, position, _, _ = await _setup({"SOLUSD": 90.0})
    exchange.failing_prices.add("SOLUSD")
    report = await monitor.check_once()
    assert report.skipped_symbols == ["SOLUSD"]
    assert (await ledger.get(position.id)).is_open


@pytest.mark.asyncio
async def test_missing_price_skips_symbol():
    ledger, _, monitor, position, _, _ = await _setup({})
    report = await monitor.check_once()
    assert report.skipped_symbols == ["SOLUSD"]
    assert report.checked == 0


@pytest.mark.asyncio
async def test_stop_loss_sends_opposite_side_exit_order():
    ledger = PositionLedger(InMemoryPositionStore(), price_floors={})
    exchange = FakeExchange(prices={"SOLUSD": 98.9})
    monitor = SLTPMonitor(ledger, exchange, proximity_pct=0.01, price_timeout=0.5, orders=exchange, order_timeout=0.5)
    signal = TradeSignal("SOLUSD", Direction.BUY, 100.0, 99.0, 103.0, REASON, leverage=25, quantity=2.0)
    position = (await ledger.open(signal, "trend_breakout")).position

    report = await monitor.check_once()

    assert [p.id for p in report.closed] == [position.id]
    assert exchange.orders == [{"symbol": "SOLUSD", "side": "SELL", "size": 2.0, "leverage": 25}]
    assert report.exit_order_failures == []


@pytest.mark.asyncio
async def test_sell_take_profit_exits_with_buy():
    ledger = PositionLedger(InMemoryPositionStore(), price_floors={})
    exchange = FakeExchange(prices={"SOLUSD": 96.5})
    monitor = SLTPMonitor(ledger, exchange, price_timeout=0.5, orders=exchange, order_timeout=0.5)
    signal = TradeSignal("SOLUSD", Direction.SELL, 100.0, 101.0, 97.0, REASON, quantity=3.0)
    await ledger.open(signal, "trend_breakout")

    await monitor.check_once()

    assert [(o["side"], o["size"]) for o in exchange.orders] == [("BUY", 3.0)]


@pytest.mark.asyncio
async def test_refused_exit_order_is_reported_and_close_stands():
    ledger = PositionLedger(InMemoryPositionStore(), price_floors={})
    exchange = FakeExchange(prices={"SOLUSD": 98.9})
    exchange.order_result = False
    monitor = SLTPMonitor(ledger, exchange, price_timeout=0.5, orders=exchange, order_timeout=0.5)
    signal = TradeSignal("SOLUSD", Direction.BUY, 100.0, 99.0, 103.0, REASON, quantity=2.0)
    position = (await ledger.open(signal, "trend_breakout")).position

    report = await monitor.check_once()

    assert [p.id for p in report.exit_order_failures] == [position.id]
    assert (await ledger.get(position.id)).exit_reason is ExitReason.STOP_LOSS
    # one attempt per hit, the loop does not retry
    await monitor.check_once()
    assert len(exchange.orders) == 1
