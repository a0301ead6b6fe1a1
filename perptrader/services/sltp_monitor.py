import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from perptrader.config import settings
from perptrader.errors import PositionNotOpenError
from perptrader.models.event_models import DomainEvent, EventType
from perptrader.models.trade_models import ExitReason, Position
from perptrader.providers.interfaces import OrderGateway, PriceSource
from perptrader.services.event_bus import EventBus
from perptrader.services.order_executor import OrderExecutor
from perptrader.services.position_ledger import PositionLedger

logger = logging.getLogger("sltp_monitor")


@dataclass
class ProximityWarning:
    position_id: str
    symbol: str
    level: str  # "STOP_LOSS" or "TAKE_PROFIT"
    level_price: float
    price: float
    distance_pct: float


@dataclass
class MonitorReport:
    closed: List[Position] = field(default_factory=list)
    warnings: List[ProximityWarning] = field(default_factory=list)
    skipped_symbols: List[str] = field(default_factory=list)
    exit_order_failures: List[Position] = field(default_factory=list)
    checked: int = 0


class SLTPMonitor:
    """Polls prices for every OPEN position and closes it once its stop or target trades.

    With an order gateway, every close is followed by an opposite-side market
    order for the position size so the venue position is flattened too.
    """

    def __init__(self, ledger: PositionLedger, prices: PriceSource, events: EventBus = None,
                 proximity_pct: float = None, price_timeout: float = None, orders: OrderGateway = None,
                 order_timeout: float = None):
        self.ledger = ledger
        self.prices = prices
        self.events = events
        self.proximity_pct = settings.SLTP_PROXIMITY_PCT if proximity_pct is None else proximity_pct
        self.price_timeout = price_timeout if price_timeout is not None else settings.PRICE_FETCH_TIMEOUT_SEC
        self.executor = OrderExecutor(orders, order_timeout) if orders is not None else None

    async def check_once(self) -> MonitorReport:
        report = MonitorReport()
        positions = await self.ledger.open_positions()
        if not positions:
            return report
        by_symbol: Dict[str, List[Position]] = {}
        for p in positions:
            by_symbol.setdefault(p.symbol, []).append(p)

        for symbol, group in by_symbol.items():
            price = await self._price(symbol)
            if price is None:
                report.skipped_symbols.append(symbol)
                continue
            for position in group:
                report.checked += 1
                closed = await self.evaluate(position, price, report)
                if closed is not None:
                    report.closed.append(closed)
                    continue
                report.warnings.extend(self.proximity(position, price))
        return report

    async def evaluate(self, position: Position, price: float, report: MonitorReport = None) -> Optional[Position]:
        """Close ``position`` if ``price`` hits its stop or target; no-op when it is already closed."""
        if not position.is_open:
            return None
        if position.is_stop_loss_hit(price):
            reason, event_type = ExitReason.STOP_LOSS, EventType.SL_HIT
        elif position.is_take_profit_hit(price):
            reason, event_type = ExitReason.TAKE_PROFIT, EventType.TP_HIT
        else:
            return None
        try:
            closed = await self.ledger.close(position.id, price, reason)
        except PositionNotOpenError:
            logger.debug(f"{position.id} already closed, ignoring {reason.value} at {price}")
            return None
        logger.info(f"{reason.value} hit for {position.symbol} {position.direction.value} @ {price} pnl={closed.pnl:.4f}")
        if self.events is not None:
            self.events.emit(DomainEvent(event_type, closed.to_dict()))
        if self.executor is not None and not await self.executor.place_exit(closed, reason):
            if report is not None:
                report.exit_order_failures.append(closed)
        return closed

    def proximity(self, position: Position, price: float) -> List[ProximityWarning]:
        threshold = price * self.proximity_pct
        warnings = []
        for level, level_price in (("STOP_LOSS", position.stop_loss), ("TAKE_PROFIT", position.take_profit)):
            distance = abs(price - level_price)
            if distance <= threshold:
                w = ProximityWarning(position.id, position.symbol, level, level_price, price, distance / price)
                logger.warning(f"{position.symbol} {position.direction.value} within {w.distance_pct:.2%} of "
                               f"{level} {level_price} (price {price})")
                warnings.append(w)
        return warnings

    async def _price(self, symbol: str) -> Optional[float]:
        try:
            price = await asyncio.wait_for(self.prices.current_price(symbol), timeout=self.price_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Price fetch for {symbol} timed out, skipping this tick")
            return None
        except Exception as e:
            logger.warning(f"Price fetch for {symbol} failed ({e}), skipping this tick")
            return None
        if price is None or price <= 0:
            logger.warning(f"No usable price for {symbol}, skipping this tick")
            return None
        return float(price)
