import asyncio
import logging

from perptrader.config import settings
from perptrader.providers.interfaces import RemotePosition, RemotePositionSource
from perptrader.services.metrics import reconcile_blocked_counter

logger = logging.getLogger("exchange_reconciler")

class ExchangeReconciler:
    """Read-only view of venue positions, consulted before every open.

    Fails closed: any error, timeout or malformed answer is reported as an
    existing remote position so the caller refuses to open.
    """

    def __init__(self, source: RemotePositionSource, timeout: float = None):
        self.source = source
        self.timeout = timeout if timeout is not None else settings.RECONCILE_TIMEOUT_SEC

    async def has_remote_open_position(self, symbol: str) -> bool:
        try:
            remote = await asyncio.wait_for(self.source.remote_position(symbol), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Remote position lookup for {symbol} timed out after {self.timeout}s, blocking open")
            reconcile_blocked_counter.labels(cause="timeout").inc()
            return True
        except Exception as e:
            logger.warning(f"Remote position lookup for {symbol} failed ({e}), blocking open")
            reconcile_blocked_counter.labels(cause="error").inc()
            return True
        if not isinstance(remote, RemotePosition):
            logger.warning(f"Remote position lookup for {symbol} returned {type(remote).__name__}, blocking open")
            reconcile_blocked_counter.labels(cause="malformed").inc()
            return True
        if remote.exists:
            logger.info(f"Remote {remote.side} position of {remote.size} already open for {symbol}")
            reconcile_blocked_counter.labels(cause="remote_open").inc()
        return remote.exists
