import logging
import math
from typing import Dict

logger = logging.getLogger("symbols")

UNDERLYING_ASSETS = {"BTCUSD": "BTC", "ETHUSD": "ETH"}
TICK_SIZES = {"BTCUSD": 0.5, "ETHUSD": 0.05}
DEFAULT_TICK = 0.01


def underlying_asset(symbol: str) -> str:
    """BTCUSD -> BTC; other symbols lose a trailing USDT/USD quote."""
    symbol = symbol.upper()
    if symbol in UNDERLYING_ASSETS:
        return UNDERLYING_ASSETS[symbol]
    for quote in ("USDT", "USD"):
        if symbol.endswith(quote) and len(symbol) > len(quote):
            return symbol[:-len(quote)]
    return symbol


def tick_size(symbol: str) -> float:
    return TICK_SIZES.get(symbol.upper(), DEFAULT_TICK)


def round_to_tick(symbol: str, price: float) -> float:
    tick = tick_size(symbol)
    decimals = max(0, -int(math.floor(math.log10(tick))))
    return round(round(price / tick) * tick, decimals)


def parse_price_floors(raw: str) -> Dict[str, float]:
    """Parse ``"BTCUSD:1000,ETHUSD:1000"`` into a dict; malformed pairs are logged and skipped."""
    floors: Dict[str, float] = {}
    for pair in (raw or "").split(","):
        pair = pair.strip()
        if not pair:
            continue
        try:
            sym, value = pair.split(":", 1)
            floors[sym.strip().upper()] = float(value)
        except ValueError:
            logger.warning(f"Ignoring malformed price floor entry '{pair}'")
    return floors
