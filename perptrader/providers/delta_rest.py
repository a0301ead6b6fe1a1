import hashlib
import hmac
import json
import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from perptrader.config import settings
from perptrader.errors import UpstreamUnavailable
from perptrader.models.candle_models import Candle
from perptrader.providers.interfaces import RemotePosition
from perptrader.utils.symbols import underlying_asset

logger = logging.getLogger("delta_rest")

RESOLUTION_SECONDS = {
    "1m": 60, "3m": 180, "5m": 300, "15m": 900, "30m": 1800,
    "1h": 3600, "2h": 7200, "4h": 14400, "6h": 21600, "1d": 86400,
}


def sign_request(secret: str, method: str, timestamp: str, path: str, query: str = "", body: str = "") -> str:
    """Hex HMAC-SHA256 over method + timestamp + path + query + body."""
    message = method + timestamp + path + query + body
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


class DeltaRest:
    """Thin async REST client for the perpetual-futures venue.

    Public market data (candles, tickers) is unsigned; position, leverage and
    order calls are signed with the api key/secret from settings.
    """

    def __init__(self, base_url: str = None, api_key: str = None, api_secret: str = None,
                 user_agent: str = None, client: httpx.AsyncClient = None):
        self.base_url = (base_url or settings.EXCHANGE_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.EXCHANGE_API_KEY
        self.api_secret = api_secret if api_secret is not None else settings.EXCHANGE_API_SECRET
        self.user_agent = user_agent or settings.EXCHANGE_USER_AGENT
        self.client = client or httpx.AsyncClient(base_url=self.base_url, timeout=settings.HTTP_TIMEOUT_SEC)
        self._product_ids: Dict[str, int] = {}

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.api_secret)

    async def close(self):
        await self.client.aclose()

    def _auth_headers(self, method: str, path: str, query: str = "", body: str = "") -> Dict[str, str]:
        timestamp = str(int(time.time()))
        return {
            "api-key": self.api_key,
            "timestamp": timestamp,
            "signature": sign_request(self.api_secret, method, timestamp, path, query, body),
            "User-Agent": self.user_agent,
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    @staticmethod
    def _result(resp: httpx.Response, operation: str, symbol: str = None) -> Any:
        try:
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise UpstreamUnavailable(operation, symbol, e) from e
        if not isinstance(data, dict) or data.get("success") is False or "result" not in data:
            raise UpstreamUnavailable(operation, symbol, ValueError(f"unexpected response: {str(data)[:200]}"))
        return data["result"]

    # -------------------------------
    # Market data
    # -------------------------------

    async def fetch_candles(self, symbol: str, resolution: str, count: int) -> List[Candle]:
        step = RESOLUTION_SECONDS.get(resolution)
        if step is None:
            raise ValueError(f"Unsupported resolution {resolution}")
        end = int(time.time())
        start = end - step * count
        params = {"resolution": resolution, "symbol": symbol, "start": start, "end": end}
        try:
            resp = await self.client.get("/v2/history/candles", params=params)
        except httpx.HTTPError as e:
            raise UpstreamUnavailable("fetch_candles", symbol, e) from e
        rows = self._result(resp, "fetch_candles", symbol) or []
        candles = sorted((Candle.from_dict(r) for r in rows), key=lambda c: c.timestamp)
        logger.debug(f"Fetched {len(candles)} {resolution} candles for {symbol}")
        return candles[-count:]

    async def current_price(self, symbol: str) -> Optional[float]:
        try:
            resp = await self.client.get(f"/v2/tickers/{symbol}")
        except httpx.HTTPError as e:
            raise UpstreamUnavailable("current_price", symbol, e) from e
        ticker = self._result(resp, "current_price", symbol)
        mark = (ticker or {}).get("mark_price") or (ticker or {}).get("close")
        return float(mark) if mark is not None else None

    # -------------------------------
    # Account
    # -------------------------------

    async def remote_position(self, symbol: str) -> RemotePosition:
        path = "/v2/positions"
        asset = underlying_asset(symbol)
        query = f"?underlying_asset_symbol={asset}"
        try:
            resp = await self.client.get(path + query, headers=self._auth_headers("GET", path, query))
        except httpx.HTTPError as e:
            raise UpstreamUnavailable("remote_position", symbol, e) from e
        result = self._result(resp, "remote_position", symbol)
        rows = result if isinstance(result, list) else [result]
        for row in rows:
            if not isinstance(row, dict):
                raise UpstreamUnavailable("remote_position", symbol, ValueError(f"malformed position row {row!r}"))
            try:
                size = float(row.get("size") or 0)
            except (TypeError, ValueError) as e:
                raise UpstreamUnavailable("remote_position", symbol, e) from e
            if size == 0:
                continue
            entry = row.get("entry_price")
            side = "BUY" if size > 0 else "SELL"
            logger.info(f"Remote position for {asset}: {side} {abs(size)} @ {entry}")
            return RemotePosition(True, side, abs(size), float(entry) if entry is not None else None)
        return RemotePosition(False)

    async def product_id(self, symbol: str) -> int:
        if symbol not in self._product_ids:
            try:
                resp = await self.client.get(f"/v2/products/{symbol}")
            except httpx.HTTPError as e:
                raise UpstreamUnavailable("product_id", symbol, e) from e
            self._product_ids[symbol] = int(self._result(resp, "product_id", symbol)["id"])
        return self._product_ids[symbol]

    async def set_leverage(self, symbol: str, leverage: float) -> bool:
        body = json.dumps({"leverage": str(int(leverage))}, separators=(",", ":"))
        try:
            pid = await self.product_id(symbol)
            path = f"/v2/products/{pid}/orders/leverage"
            resp = await self.client.post(path, content=body, headers=self._auth_headers("POST", path, "", body))
            self._result(resp, "set_leverage", symbol)
        except (httpx.HTTPError, UpstreamUnavailable) as e:
            logger.warning(f"Setting leverage {leverage}x for {symbol} failed: {e}")
            return False
        return True

    async def place_order(self, symbol: str, side: str, size: float, leverage: Optional[float]) -> bool:
        """Market order; returns False when the venue refuses it."""
        if not self.is_configured:
            logger.error("API credentials not configured. Cannot place orders.")
            return False
        if leverage:
            await self.set_leverage(symbol, leverage)
        path = "/v2/orders"
        payload = {
            "product_symbol": symbol,
            "size": size,
            "side": side.lower(),
            "order_type": "market_order",
        }
        body = json.dumps(payload, separators=(",", ":"))
        try:
            resp = await self.client.post(path, content=body, headers=self._auth_headers("POST", path, "", body))
            result = self._result(resp, "place_order", symbol)
        except (httpx.HTTPError, UpstreamUnavailable) as e:
            logger.error(f"Order {side} {size} {symbol} failed: {e}")
            return False
        logger.info(f"Order placed: {side} {size} {symbol} -> {result.get('id') if isinstance(result, dict) else result}")
        return True
