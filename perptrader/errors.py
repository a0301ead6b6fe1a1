"""Error taxonomy shared by the engine, ledger and collaborators.

Insufficient candle data is not an error: detectors report it through
``DetectionResult.insufficient_data`` and the cycle is skipped. Rejected opens
are not raised either; ``OpenResult.error()`` names the class a rejection
belongs to for logs and metrics.
"""


class TradingError(Exception):
    """Base class for all engine errors."""


class UpstreamUnavailable(TradingError):
    """A price/candle/remote-position/order call failed, timed out or returned garbage."""

    def __init__(self, operation: str, symbol: str = None, cause: Exception = None):
        self.operation = operation
        self.symbol = symbol
        self.cause = cause
        detail = f"{operation} failed"
        if symbol:
            detail += f" for {symbol}"
        if cause is not None:
            detail += f": {type(cause).__name__}: {cause}"
        super().__init__(detail)


class InvariantViolation(TradingError):
    """Duplicate open (local or on the venue) or stop/target on the wrong side of entry."""


class ValidationFailure(TradingError):
    """Entry price outside the sanity band even after correction, or no usable size."""


class PositionNotFoundError(TradingError):
    pass


class PositionNotOpenError(TradingError):
    """close() called on a position that is already CLOSED."""
