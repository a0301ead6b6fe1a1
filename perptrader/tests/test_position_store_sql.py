import asyncio

import pytest

from perptrader.models.trade_models import (Direction, ExitReason, Position, PositionStatus,
                                            SignalKind, TradeSignal, TrendBreakoutReason)
from perptrader.persistence.db import SqlPositionStore, create_position_store
from perptrader.persistence.position_store import InMemoryPositionStore
from perptrader.services.position_ledger import PositionLedger, RejectReason


def _signal():
    return TradeSignal("SOLUSD", Direction.BUY, 100.0, 99.0, 103.0, TrendBreakoutReason(95.0, 99.0, -0.1, 3))


def _position(pid, symbol="BTCUSD", strategy_id="trend_breakout"):
    return Position(id=pid, symbol=symbol, strategy_id=strategy_id, direction=Direction.BUY,
                    entry_price=65000.0, stop_loss=64675.0, take_profit=65650.0, quantity=1.0,
                    leverage=25.0, signal_kind=SignalKind.TREND_BREAKOUT)


@pytest.fixture
def sqlite_url(tmp_path):
    return f"sqlite:///{tmp_path / 'positions.db'}"


@pytest.mark.asyncio
async def test_unique_open_row_enforced_by_database(sqlite_url):
    store = SqlPositionStore(sqlite_url)
    await store.connect()
    try:
        assert await store.insert_if_no_open(_position("a"))
        assert not await store.insert_if_no_open(_position("b"))
        assert await store.insert_if_no_open(_position("c", strategy_id="ema_crossover"))

        first = await store.get("a")
        first.close(65650.0, ExitReason.TAKE_PROFIT)
        await store.update(first)
        # the key is free again once the OPEN row is closed
        assert await store.insert_if_no_open(_position("d"))
    finally:
        await store.disconnect()


@pytest.mark.asyncio
async def test_round_trip_and_filters(sqlite_url):
    store = SqlPositionStore(sqlite_url)
    await store.connect()
    try:
        await store.insert_if_no_open(_position("a"))
        await store.insert_if_no_open(_position("b", symbol="ETHUSD"))
        row = await store.get("a")
        assert row.direction is Direction.BUY
        assert row.signal_kind is SignalKind.TREND_BREAKOUT
        assert row.entry_time.tzinfo is not None

        row.close(64675.0, ExitReason.STOP_LOSS)
        await store.update(row)
        closed = await store.find(status=PositionStatus.CLOSED)
        assert [p.id for p in closed] == ["a"]
        assert closed[0].pnl == pytest.approx(-325.0)
        assert closed[0].exit_reason is ExitReason.STOP_LOSS
        assert [p.id for p in await store.find(symbol="ETHUSD", status=PositionStatus.OPEN)] == ["b"]
        assert await store.get("missing") is None
    finally:
        await store.disconnect()


@pytest.mark.asyncio
async def test_in_memory_sqlite_url_shares_one_database():
    store = SqlPositionStore("sqlite://")
    await store.connect()
    try:
        await store.insert_if_no_open(_position("a"))
        assert [p.id for p in await store.find()] == ["a"]
    finally:
        await store.disconnect()


@pytest.mark.asyncio
async def test_ledger_on_sql_store_rejects_concurrent_duplicates(sqlite_url):
    store = SqlPositionStore(sqlite_url)
    await store.connect()
    try:
        ledger = PositionLedger(store, price_floors={})
        results = await asyncio.gather(*(ledger.open(_signal(), "trend_breakout") for _ in range(10)))
        assert sum(r.ok for r in results) == 1
        assert {r.reason for r in results if not r.ok} == {RejectReason.DUPLICATE_POSITION}
    finally:
        await store.disconnect()


def test_store_factory():
    assert isinstance(create_position_store(""), InMemoryPositionStore)
    assert isinstance(create_position_store("sqlite://"), SqlPositionStore)
