import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (Column, DateTime, Float, Index, MetaData, String, Table,
                        create_engine, select, text)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool

from perptrader.errors import PositionNotFoundError
from perptrader.models.trade_models import (Direction, ExitReason, Position,
                                            PositionStatus, SignalKind)
from perptrader.persistence.position_store import InMemoryPositionStore, PositionStore

logger = logging.getLogger("database")

metadata = MetaData()

positions = Table(
    'positions', metadata,
    Column('id', String, primary_key=True),
    Column('symbol', String, nullable=False),
    Column('strategy_id', String, nullable=False),
    Column('direction', String, nullable=False),
    Column('entry_price', Float, nullable=False),
    Column('stop_loss', Float, nullable=False),
    Column('take_profit', Float, nullable=False),
    Column('quantity', Float, nullable=False),
    Column('leverage', Float),
    Column('signal_kind', String),
    Column('status', String, nullable=False, default='OPEN'),
    Column('entry_time', DateTime(timezone=True)),
    Column('exit_time', DateTime(timezone=True)),
    Column('exit_price', Float),
    Column('exit_reason', String),
    Column('pnl', Float),
)

# At most one OPEN row per (symbol, strategy_id); the database refuses the second insert.
Index(
    'uq_positions_one_open', positions.c.symbol, positions.c.strategy_id,
    unique=True,
    sqlite_where=positions.c.status == 'OPEN',
    postgresql_where=positions.c.status == 'OPEN',
)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_row(p: Position) -> dict:
    return {
        'id': p.id,
        'symbol': p.symbol,
        'strategy_id': p.strategy_id,
        'direction': p.direction.value,
        'entry_price': p.entry_price,
        'stop_loss': p.stop_loss,
        'take_profit': p.take_profit,
        'quantity': p.quantity,
        'leverage': p.leverage,
        'signal_kind': p.signal_kind.value if p.signal_kind else None,
        'status': p.status.value,
        'entry_time': p.entry_time,
        'exit_time': p.exit_time,
        'exit_price': p.exit_price,
        'exit_reason': p.exit_reason.value if p.exit_reason else None,
        'pnl': p.pnl,
    }


def _from_row(r) -> Position:
    m = r._mapping
    return Position(
        id=m['id'],
        symbol=m['symbol'],
        strategy_id=m['strategy_id'],
        direction=Direction(m['direction']),
        entry_price=m['entry_price'],
        stop_loss=m['stop_loss'],
        take_profit=m['take_profit'],
        quantity=m['quantity'],
        leverage=m['leverage'],
        signal_kind=SignalKind(m['signal_kind']) if m['signal_kind'] else None,
        status=PositionStatus(m['status']),
        entry_time=_aware(m['entry_time']),
        exit_time=_aware(m['exit_time']),
        exit_price=m['exit_price'],
        exit_reason=ExitReason(m['exit_reason']) if m['exit_reason'] else None,
        pnl=m['pnl'],
    )


class SqlPositionStore(PositionStore):
    """SQLAlchemy Core position store (SQLite or PostgreSQL)."""

    def __init__(self, url: str):
        self.url = url
        if url in ("sqlite://", "sqlite:///:memory:"):
            # one shared connection, otherwise every checkout sees an empty database
            self.engine = create_engine(url, poolclass=StaticPool, connect_args={"check_same_thread": False})
        else:
            self.engine = create_engine(url)
        self._connected = False

    async def connect(self):
        metadata.create_all(self.engine)
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        self._connected = True
        logger.info("Database connected successfully")

    async def disconnect(self):
        self._connected = False
        self.engine.dispose()
        logger.info("Database disconnected")

    def _require(self):
        if not self._connected:
            raise RuntimeError("Database not connected")

    async def insert_if_no_open(self, position: Position) -> bool:
        self._require()
        try:
            with self.engine.begin() as conn:
                conn.execute(positions.insert().values(**_to_row(position)))
            return True
        except IntegrityError:
            logger.debug(f"Insert refused by unique index for {position.symbol}/{position.strategy_id}")
            return False

    async def update(self, position: Position) -> None:
        self._require()
        row = _to_row(position)
        row.pop('id')
        with self.engine.begin() as conn:
            result = conn.execute(positions.update().where(positions.c.id == position.id).values(**row))
            if result.rowcount == 0:
                raise PositionNotFoundError(f"Position {position.id} not found")

    async def get(self, position_id: str) -> Optional[Position]:
        self._require()
        with self.engine.connect() as conn:
            r = conn.execute(positions.select().where(positions.c.id == position_id)).first()
        return _from_row(r) if r else None

    async def find(self, symbol: str = None, strategy_id: str = None,
                   status: PositionStatus = None) -> List[Position]:
        self._require()
        query = select(positions)
        if symbol is not None:
            query = query.where(positions.c.symbol == symbol)
        if strategy_id is not None:
            query = query.where(positions.c.strategy_id == strategy_id)
        if status is not None:
            query = query.where(positions.c.status == status.value)
        query = query.order_by(positions.c.entry_time)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_from_row(r) for r in rows]


def create_position_store(url: str) -> PositionStore:
    """Empty url selects the in-memory store."""
    if not url:
        return InMemoryPositionStore()
    return SqlPositionStore(url)
