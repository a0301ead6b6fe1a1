"""
Signal and position records for the trading engine.
"""
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from perptrader.errors import PositionNotOpenError


class Direction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"

    @property
    def sign(self) -> int:
        return 1 if self is Direction.BUY else -1

    @property
    def opposite(self) -> "Direction":
        return Direction.SELL if self is Direction.BUY else Direction.BUY


class PositionStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class SignalKind(str, Enum):
    TREND_BREAKOUT = "TREND_BREAKOUT"
    CROSSOVER = "CROSSOVER"
    PULLBACK = "PULLBACK"


class ExitReason(str, Enum):
    STOP_LOSS = "STOP_LOSS"
    TAKE_PROFIT = "TAKE_PROFIT"
    ORDER_REJECTED = "ORDER_REJECTED"
    MANUAL = "MANUAL"


@dataclass(frozen=True)
class TrendBreakoutReason:
    """Close broke a fitted trendline on the side of the moving-average filter."""
    moving_average: float
    line_value: float
    line_slope: float
    swing_points: int
    kind: SignalKind = SignalKind.TREND_BREAKOUT


@dataclass(frozen=True)
class CrossoverReason:
    fast_ema: float
    slow_ema: float
    prev_fast_ema: float
    prev_slow_ema: float
    kind: SignalKind = SignalKind.CROSSOVER


@dataclass(frozen=True)
class PullbackReason:
    fast_ema: float
    slow_ema: float
    swing_price: float
    body_pct: float
    risk_per_unit: float
    kind: SignalKind = SignalKind.PULLBACK


SignalReason = Union[TrendBreakoutReason, CrossoverReason, PullbackReason]


def risk_sides_ok(direction: Direction, entry: float, stop_loss: float, take_profit: float) -> bool:
    """True when stop and target sit on the loss/profit side of entry."""
    if direction is Direction.BUY:
        return stop_loss < entry < take_profit
    return take_profit < entry < stop_loss


@dataclass(frozen=True)
class TradeSignal:
    symbol: str
    direction: Direction
    entry_price: float
    stop_loss: float
    take_profit: float
    reason: SignalReason
    leverage: Optional[float] = None
    quantity: Optional[float] = None

    @property
    def kind(self) -> SignalKind:
        return self.reason.kind

    def is_valid(self) -> bool:
        return risk_sides_ok(self.direction, self.entry_price, self.stop_loss, self.take_profit)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["direction"] = self.direction.value
        data["reason"] = {**asdict(self.reason), "kind": self.reason.kind.value}
        return data


@dataclass
class DetectionResult:
    """Outcome of one strategy evaluation for one symbol."""
    symbol: str
    signals: List[TradeSignal] = field(default_factory=list)
    insufficient_data: bool = False
    skipped_reason: Optional[str] = None

    def __bool__(self) -> bool:
        return bool(self.signals)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Position:
    id: str
    symbol: str
    strategy_id: str
    direction: Direction
    entry_price: float
    stop_loss: float
    take_profit: float
    quantity: float
    leverage: Optional[float] = None
    signal_kind: Optional[SignalKind] = None
    status: PositionStatus = PositionStatus.OPEN
    entry_time: datetime = field(default_factory=_utcnow)
    exit_time: Optional[datetime] = None
    exit_price: Optional[float] = None
    exit_reason: Optional[ExitReason] = None
    pnl: Optional[float] = None

    @property
    def is_open(self) -> bool:
        return self.status is PositionStatus.OPEN

    def unrealized_pnl(self, price: float) -> float:
        return (price - self.entry_price) * self.quantity * self.direction.sign

    def is_stop_loss_hit(self, price: float) -> bool:
        if self.direction is Direction.BUY:
            return price <= self.stop_loss
        return price >= self.stop_loss

    def is_take_profit_hit(self, price: float) -> bool:
        if self.direction is Direction.BUY:
            return price >= self.take_profit
        return price <= self.take_profit

    def close(self, exit_price: float, reason: ExitReason, when: datetime = None) -> "Position":
        if not self.is_open:
            raise PositionNotOpenError(f"Position {self.id} is already {self.status.value}")
        self.exit_price = exit_price
        self.exit_reason = reason
        self.exit_time = when or _utcnow()
        self.pnl = self.unrealized_pnl(exit_price)
        self.status = PositionStatus.CLOSED
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "strategy_id": self.strategy_id,
            "direction": self.direction.value,
            "entry_price": self.entry_price,
            "stop_loss": self.stop_loss,
            "take_profit": self.take_profit,
            "quantity": self.quantity,
            "leverage": self.leverage,
            "signal_kind": self.signal_kind.value if self.signal_kind else None,
            "status": self.status.value,
            "entry_time": self.entry_time.isoformat() if self.entry_time else None,
            "exit_time": self.exit_time.isoformat() if self.exit_time else None,
            "exit_price": self.exit_price,
            "exit_reason": self.exit_reason.value if self.exit_reason else None,
            "pnl": self.pnl,
        }
