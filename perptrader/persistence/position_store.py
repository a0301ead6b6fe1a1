"""
Position store interface and the default in-memory implementation.
"""
import asyncio
import logging
from dataclasses import replace
from typing import Dict, List, Optional

from perptrader.errors import PositionNotFoundError
from perptrader.models.trade_models import Position, PositionStatus

logger = logging.getLogger("position_store")


class PositionStore:
    """Async keyed store for positions.

    ``insert_if_no_open`` is the atomic conditional insert the ledger relies
    on: it writes the position only when no OPEN row exists for the same
    (symbol, strategy_id) and reports whether it did.
    """

    async def connect(self):
        pass

    async def disconnect(self):
        pass

    async def insert_if_no_open(self, position: Position) -> bool:
        raise NotImplementedError

    async def update(self, position: Position) -> None:
        raise NotImplementedError

    async def get(self, position_id: str) -> Optional[Position]:
        raise NotImplementedError

    async def find(self, symbol: str = None, strategy_id: str = None,
                   status: PositionStatus = None) -> List[Position]:
        raise NotImplementedError


class InMemoryPositionStore(PositionStore):
    """Dict-backed store; records are copied in and out so callers never share state with it."""

    def __init__(self):
        self._rows: Dict[str, Position] = {}
        self._lock = asyncio.Lock()

    async def insert_if_no_open(self, position: Position) -> bool:
        async with self._lock:
            for row in self._rows.values():
                if row.symbol == position.symbol and row.strategy_id == position.strategy_id and row.is_open:
                    logger.debug(f"Insert refused: {row.id} already OPEN for {position.symbol}/{position.strategy_id}")
                    return False
            self._rows[position.id] = replace(position)
            return True

    async def update(self, position: Position) -> None:
        async with self._lock:
            if position.id not in self._rows:
                raise PositionNotFoundError(f"Position {position.id} not found")
            self._rows[position.id] = replace(position)

    async def get(self, position_id: str) -> Optional[Position]:
        row = self._rows.get(position_id)
        return replace(row) if row else None

    async def find(self, symbol: str = None, strategy_id: str = None,
                   status: PositionStatus = None) -> List[Position]:
        rows = [
            r for r in self._rows.values()
            if (symbol is None or r.symbol == symbol)
            and (strategy_id is None or r.strategy_id == strategy_id)
            and (status is None or r.status is status)
        ]
        rows.sort(key=lambda r: r.entry_time)
        return [replace(r) for r in rows]
