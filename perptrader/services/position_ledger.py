"""
Authoritative local record of positions.

Opening is check-then-act under a per-(symbol, strategy) asyncio.Lock:

    1. stop/target on the correct side of entry (rejected before anything else)
    2. no local OPEN position for the key
    3. no remote position on the venue (fails closed)
    4. entry corrected to the live mark price and checked against the price floor
    5. atomic conditional insert in the store

The store refuses a second OPEN row for the same key on its own, so even a
caller bypassing the lock cannot create a duplicate.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple, Type

from perptrader.config import settings
from perptrader.errors import InvariantViolation, PositionNotFoundError, TradingError, ValidationFailure
from perptrader.models.event_models import DomainEvent, EventType
from perptrader.models.trade_models import (ExitReason, Position, PositionStatus, SignalKind,
                                            TradeSignal, risk_sides_ok)
from perptrader.persistence.position_store import PositionStore
from perptrader.providers.interfaces import PriceSource
from perptrader.services.event_bus import EventBus
from perptrader.services.exchange_reconciler import ExchangeReconciler
from perptrader.services.metrics import (open_rejected_counter, positions_closed_counter,
                                         positions_opened_counter)
from perptrader.services.risk_manager import RiskManager
from perptrader.utils.symbols import parse_price_floors, round_to_tick

logger = logging.getLogger("position_ledger")

# levels rebuilt around a corrected entry when the strategy's own no longer bracket it
DEFAULT_STOP_LOSS_PCT = 0.005
DEFAULT_TAKE_PROFIT_PCT = 0.01


class RejectReason(str, Enum):
    DUPLICATE_POSITION = "DUPLICATE_POSITION"
    REMOTE_POSITION = "REMOTE_POSITION"
    INVALID_STOPS = "INVALID_STOPS"
    PRICE_SANITY = "PRICE_SANITY"
    INVALID_QUANTITY = "INVALID_QUANTITY"

    @property
    def error(self) -> Type[TradingError]:
        if self in (RejectReason.PRICE_SANITY, RejectReason.INVALID_QUANTITY):
            return ValidationFailure
        return InvariantViolation


@dataclass(frozen=True)
class OpenResult:
    position: Optional[Position] = None
    reason: Optional[RejectReason] = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.position is not None

    @classmethod
    def rejected(cls, reason: RejectReason, detail: str = "") -> "OpenResult":
        return cls(None, reason, detail)

    def error(self) -> Optional[TradingError]:
        if self.reason is None:
            return None
        return self.reason.error(f"{self.reason.value}: {self.detail}")


class PositionLedger:
    def __init__(self, store: PositionStore, reconciler: ExchangeReconciler = None,
                 price_source: PriceSource = None, events: EventBus = None,
                 price_floors: Dict[str, float] = None, default_quantity: float = None,
                 price_timeout: float = None, risk_manager: RiskManager = None):
        self.store = store
        self.reconciler = reconciler
        self.price_source = price_source
        self.events = events
        self.price_floors = price_floors if price_floors is not None else parse_price_floors(settings.PRICE_FLOORS)
        self.default_quantity = default_quantity if default_quantity is not None else settings.DEFAULT_QUANTITY
        self.price_timeout = price_timeout if price_timeout is not None else settings.PRICE_FETCH_TIMEOUT_SEC
        self.risk_manager = risk_manager or RiskManager(settings.ACCOUNT_SIZE, settings.RISK_PER_TRADE, settings.QUANTITY_STEP)
        self._locks: Dict[Tuple[str, str], asyncio.Lock] = {}

    def _lock(self, symbol: str, strategy_id: str) -> asyncio.Lock:
        key = (symbol, strategy_id)
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    # -------------------------------
    # Queries
    # -------------------------------

    async def has_open_position(self, symbol: str, strategy_id: str) -> bool:
        return bool(await self.store.find(symbol, strategy_id, PositionStatus.OPEN))

    async def open_positions(self, symbol: str = None, strategy_id: str = None) -> List[Position]:
        return await self.store.find(symbol, strategy_id, PositionStatus.OPEN)

    async def closed_positions(self, symbol: str = None, strategy_id: str = None) -> List[Position]:
        return await self.store.find(symbol, strategy_id, PositionStatus.CLOSED)

    async def get(self, position_id: str) -> Optional[Position]:
        return await self.store.get(position_id)

    # -------------------------------
    # Open
    # -------------------------------

    async def open(self, signal: TradeSignal, strategy_id: str) -> OpenResult:
        symbol = signal.symbol
        if not signal.is_valid():
            return self._reject(RejectReason.INVALID_STOPS, symbol, strategy_id,
                                f"entry={signal.entry_price} sl={signal.stop_loss} tp={signal.take_profit}")
        quantity = signal.quantity if signal.quantity is not None else self.default_quantity
        if quantity <= 0:
            return self._reject(RejectReason.INVALID_QUANTITY, symbol, strategy_id, f"quantity={quantity}")

        async with self._lock(symbol, strategy_id):
            if await self.has_open_position(symbol, strategy_id):
                return self._reject(RejectReason.DUPLICATE_POSITION, symbol, strategy_id, "local position already OPEN")
            if self.reconciler is not None and await self.reconciler.has_remote_open_position(symbol):
                return self._reject(RejectReason.REMOTE_POSITION, symbol, strategy_id, "venue reports an open position or could not be checked")

            entry = await self._corrected_entry(signal)
            floor = self.price_floors.get(symbol)
            if floor is not None and entry < floor:
                return self._reject(RejectReason.PRICE_SANITY, symbol, strategy_id,
                                    f"entry {entry} below floor {floor} after correction")

            stop_loss, take_profit = self._levels_for(signal, entry)
            entry = round_to_tick(symbol, entry)
            stop_loss = round_to_tick(symbol, stop_loss)
            take_profit = round_to_tick(symbol, take_profit)
            if not risk_sides_ok(signal.direction, entry, stop_loss, take_profit):
                return self._reject(RejectReason.INVALID_STOPS, symbol, strategy_id,
                                    f"levels collapse after tick rounding: entry={entry} sl={stop_loss} tp={take_profit}")
            if signal.kind is SignalKind.PULLBACK:
                # risk-sized signals are re-sized against the corrected entry and stop
                quantity = self.risk_manager.calc_size(entry, stop_loss)
                if quantity <= 0:
                    return self._reject(RejectReason.INVALID_QUANTITY, symbol, strategy_id,
                                        f"no size fits risk at entry={entry} sl={stop_loss}")

            position = Position(
                id=str(uuid.uuid4()),
                symbol=symbol,
                strategy_id=strategy_id,
                direction=signal.direction,
                entry_price=entry,
                stop_loss=stop_loss,
                take_profit=take_profit,
                quantity=quantity,
                leverage=signal.leverage,
                signal_kind=signal.kind,
            )
            if not await self.store.insert_if_no_open(position):
                return self._reject(RejectReason.DUPLICATE_POSITION, symbol, strategy_id, "store refused insert")

        positions_opened_counter.labels(strategy=strategy_id).inc()
        logger.info(f"Opened {position.direction.value} {symbol} [{strategy_id}] qty={quantity} "
                    f"entry={entry} sl={stop_loss} tp={take_profit} id={position.id}")
        self._emit(EventType.POSITION_OPENED, position.to_dict())
        return OpenResult(position)

    async def _corrected_entry(self, signal: TradeSignal) -> float:
        """Live mark price when available, otherwise the signal's own entry."""
        if self.price_source is None:
            return signal.entry_price
        try:
            price = await asyncio.wait_for(self.price_source.current_price(signal.symbol), timeout=self.price_timeout)
        except Exception as e:
            logger.warning(f"Mark price for {signal.symbol} unavailable ({e!r}), keeping signal entry {signal.entry_price}")
            return signal.entry_price
        if price is None or price <= 0:
            return signal.entry_price
        if price != signal.entry_price:
            logger.debug(f"{signal.symbol} entry corrected {signal.entry_price} -> {price}")
        return float(price)

    @staticmethod
    def _levels_for(signal: TradeSignal, entry: float) -> Tuple[float, float]:
        # keep the strategy's levels while they still bracket the corrected entry
        sign = signal.direction.sign
        stop_loss, take_profit = signal.stop_loss, signal.take_profit
        if (entry - stop_loss) * sign <= 0:
            stop_loss = entry * (1 - sign * DEFAULT_STOP_LOSS_PCT)
        if (take_profit - entry) * sign <= 0:
            take_profit = entry * (1 + sign * DEFAULT_TAKE_PROFIT_PCT)
        return stop_loss, take_profit

    def _reject(self, reason: RejectReason, symbol: str, strategy_id: str, detail: str) -> OpenResult:
        result = OpenResult.rejected(reason, detail)
        error = result.error()
        open_rejected_counter.labels(reason=reason.value, category=type(error).__name__).inc()
        logger.info(f"Open rejected for {symbol} [{strategy_id}]: {type(error).__name__} {error}")
        return result

    # -------------------------------
    # Close
    # -------------------------------

    async def close(self, position_id: str, exit_price: float, reason: ExitReason) -> Position:
        position = await self.store.get(position_id)
        if position is None:
            raise PositionNotFoundError(f"Position {position_id} not found")
        async with self._lock(position.symbol, position.strategy_id):
            position = await self.store.get(position_id)
            # raises PositionNotOpenError when already CLOSED
            position.close(exit_price, reason)
            await self.store.update(position)

        positions_closed_counter.labels(reason=reason.value).inc()
        logger.info(f"Closed {position.direction.value} {position.symbol} [{position.strategy_id}] "
                    f"@ {exit_price} reason={reason.value} pnl={position.pnl:.4f} id={position.id}")
        self._emit(EventType.POSITION_CLOSED, position.to_dict())
        return position

    # -------------------------------
    # Startup recovery
    # -------------------------------

    async def recover(self) -> List[Position]:
        positions = await self.open_positions()
        if not positions:
            logger.info("Startup recovery: no OPEN positions")
        for p in positions:
            logger.info(f"Startup recovery: {p.direction.value} {p.symbol} [{p.strategy_id}] "
                        f"entry={p.entry_price} sl={p.stop_loss} tp={p.take_profit} id={p.id}")
        return positions

    def _emit(self, event_type: EventType, payload: dict):
        if self.events is not None:
            self.events.emit(DomainEvent(event_type, payload))
