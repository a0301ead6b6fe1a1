import asyncio
import logging
from typing import Optional

from perptrader.config import settings
from perptrader.models.trade_models import Direction, ExitReason, Position
from perptrader.providers.interfaces import OrderGateway
from perptrader.services.metrics import exit_order_failures_counter, order_latency

logger = logging.getLogger("order_executor")


class OrderExecutor:
    """Sends market orders for ledger positions with a bounded timeout.

    Entry orders go in the position's direction; exit orders go in the
    opposite direction for the same size so the venue position is flattened
    after a local close.
    """

    def __init__(self, orders: OrderGateway, timeout: float = None):
        self.orders = orders
        self.timeout = timeout if timeout is not None else settings.ORDER_TIMEOUT_SEC

    async def place_entry(self, position: Position) -> bool:
        return await self._send(position, position.direction, "entry")

    async def place_exit(self, position: Position, reason: Optional[ExitReason] = None) -> bool:
        reason = reason or position.exit_reason
        ok = await self._send(position, position.direction.opposite, "exit")
        if not ok:
            exit_order_failures_counter.labels(reason=reason.value if reason else "UNKNOWN").inc()
            logger.error(f"Exit order for {position.symbol} [{position.strategy_id}] id={position.id} did not go "
                         f"through; the venue position may still be open")
        return ok

    async def _send(self, position: Position, side: Direction, label: str) -> bool:
        try:
            with order_latency.time():
                return bool(await asyncio.wait_for(
                    self.orders.place_order(position.symbol, side.value, position.quantity, position.leverage),
                    timeout=self.timeout,
                ))
        except asyncio.TimeoutError:
            logger.error(f"{label} order {side.value} {position.symbol} timed out after {self.timeout}s")
        except Exception as e:
            logger.error(f"{label} order {side.value} {position.symbol} failed: {e}")
        return False
