import logging
import sys

from perptrader.config import settings

def configure_logging(level: str = None):
    """Configure logging for the application."""
    root = logging.getLogger()
    if any(getattr(h, "_perptrader", False) for h in root.handlers):
        return
    handler = logging.StreamHandler(sys.stdout)
    handler._perptrader = True
    formatter = logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
    handler.setFormatter(formatter)
    root.addHandler(handler)
    root.setLevel(getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO))
    # httpx logs every request at INFO; the SL/TP loop would flood the output
    logging.getLogger("httpx").setLevel(logging.WARNING)

# Make sure the function is available for import
__all__ = ['configure_logging']
