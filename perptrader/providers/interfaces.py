"""
Narrow collaborator interfaces consumed by the core.

The engine only ever talks to these protocols; the REST client, the webhook
notifier and test fakes all satisfy them structurally.
"""
from dataclasses import dataclass
from typing import List, Optional, Protocol

from perptrader.models.candle_models import Candle
from perptrader.models.event_models import DomainEvent


@dataclass(frozen=True)
class RemotePosition:
    exists: bool
    side: Optional[str] = None
    size: float = 0.0
    entry_price: Optional[float] = None


class CandleFeed(Protocol):
    async def fetch_candles(self, symbol: str, resolution: str, count: int) -> List[Candle]:
        """Oldest first; may return fewer than ``count`` and empty for no data."""
        ...


class PriceSource(Protocol):
    async def current_price(self, symbol: str) -> Optional[float]:
        ...


class RemotePositionSource(Protocol):
    async def remote_position(self, symbol: str) -> RemotePosition:
        """Raise when the venue cannot be queried or answers garbage."""
        ...


class OrderGateway(Protocol):
    async def place_order(self, symbol: str, side: str, size: float, leverage: Optional[float]) -> bool:
        ...


class EventSink(Protocol):
    async def publish(self, event: DomainEvent) -> None:
        ...
