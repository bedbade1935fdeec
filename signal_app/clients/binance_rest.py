"""Binance Futures REST client: market data, account and order endpoints."""

import asyncio
import hashlib
import hmac
import logging
import time
from typing import Any
from urllib.parse import urlencode

import httpx

from signal_core.errors import CredentialsNotFound, ExchangeError, GatewayTimeout
from signal_core.models import Candle, ExchangeCredentials, OrderResult, OrderSpec

logger = logging.getLogger(__name__)

LIVE_BASE_URL = "https://fapi.binance.com"
TESTNET_BASE_URL = "https://testnet.binancefuture.com"


def sign(query_string: str, secret: str) -> str:
    """HMAC-SHA256 of the exact query string, hex-encoded."""
    return hmac.new(
        secret.encode("utf-8"), query_string.encode("utf-8"), hashlib.sha256
    ).hexdigest()


class RateLimiter:
    """Simple rate limiter for API calls."""

    def __init__(self, calls_per_minute: int = 1200):
        self.calls_per_minute = calls_per_minute
        self.interval = 60.0 / calls_per_minute
        self.last_call = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait if necessary to respect rate limit."""
        async with self._lock:
            now = asyncio.get_running_loop().time()
            wait_time = self.last_call + self.interval - now
            if wait_time > 0:
                await asyncio.sleep(wait_time)
            self.last_call = asyncio.get_running_loop().time()


class BinanceRestClient:
    """Binance Futures REST API client bound to one credential context.

    The venue (testnet or live) is fixed by the credentials at construction.
    Calls without credentials are limited to public endpoints.
    """

    def __init__(
        self,
        credentials: ExchangeCredentials | None = None,
        timeout: float = 10.0,
        calls_per_minute: int = 1200,
        testnet: bool | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.credentials = credentials
        if testnet is None:
            testnet = credentials.is_testnet if credentials else False
        self.base_url = TESTNET_BASE_URL if testnet else LIVE_BASE_URL
        self.timeout = timeout
        self.rate_limiter = RateLimiter(calls_per_minute)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "BinanceRestClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {}
            if self.credentials and self.credentials.api_key:
                headers["X-MBX-APIKEY"] = self.credentials.api_key
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _build_query(self, params: dict[str, Any] | None, signed: bool) -> str:
        query = urlencode({k: v for k, v in (params or {}).items() if v is not None})
        if not signed:
            return query

        if not self.credentials or not self.credentials.secret_key:
            raise CredentialsNotFound("Signed endpoint called without API credentials")

        timestamp = f"timestamp={int(time.time() * 1000)}"
        query = f"{query}&{timestamp}" if query else timestamp
        return f"{query}&signature={sign(query, self.credentials.secret_key)}"

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        signed: bool = False,
    ) -> Any:
        """Make an API request with rate limiting.

        Raises:
            GatewayTimeout: The venue did not answer in time or could not be reached.
            ExchangeError: The venue answered with a non-2xx status.
        """
        query = self._build_query(params, signed)
        url = f"{endpoint}?{query}" if query else endpoint

        await self.rate_limiter.acquire()
        client = await self._get_client()
        try:
            response = await client.request(method, url)
        except (httpx.TimeoutException, httpx.ConnectError) as e:
            logger.warning(f"Binance {method} {endpoint} timed out: {e}")
            raise GatewayTimeout(
                f"Binance {method} {endpoint} timed out", endpoint=endpoint
            ) from e
        except httpx.TransportError as e:
            # Request may have reached the venue
            logger.error(f"Binance {method} {endpoint} transport error: {e}")
            raise ExchangeError(str(e), endpoint=endpoint) from e

        if response.is_success:
            return response.json()

        try:
            body = response.json()
            message, code = body.get("msg", response.text), body.get("code")
        except ValueError:
            message, code = response.text or response.reason_phrase, None

        logger.error(
            f"Binance API error {method} {endpoint} "
            f"(HTTP {response.status_code}, code {code}): {message}"
        )
        raise ExchangeError(
            message, status_code=response.status_code, code=code, endpoint=endpoint
        )

    # ---------- Market data ----------

    async def get_klines(self, symbol: str, interval: str, limit: int = 500) -> list[Candle]:
        """
        Fetch K-line data from Binance.

        Args:
            symbol: Trading pair (e.g., "BTCUSDT")
            interval: K-line interval (e.g., "5m", "1h")
            limit: Maximum number of K-lines (max 1500)

        Returns:
            Candles ordered ascending by open time
        """
        params = {"symbol": symbol, "interval": interval, "limit": min(limit, 1500)}
        data = await self._request("GET", "/fapi/v1/klines", params)
        return [Candle.from_binance(item) for item in data]

    async def get_24h_ticker(self, symbol: str | None = None) -> Any:
        """24h ticker statistics for one symbol (dict) or all symbols (list)."""
        return await self._request("GET", "/fapi/v1/ticker/24hr", {"symbol": symbol})

    # ---------- Account ----------

    async def get_balance(self) -> list[dict[str, Any]]:
        return await self._request("GET", "/fapi/v2/balance", signed=True)

    async def get_positions(self, active_only: bool = True) -> list[dict[str, Any]]:
        """Position risk entries; zero-size positions dropped unless active_only=False."""
        positions = await self._request("GET", "/fapi/v2/positionRisk", signed=True)
        if active_only:
            positions = [p for p in positions if float(p.get("positionAmt", 0)) != 0]
        return positions

    # ---------- Orders ----------

    async def place_order(self, spec: OrderSpec) -> OrderResult:
        """
        Place an order.

        Args:
            spec: Order specification (validated before any network call)

        Returns:
            Venue acknowledgement with order id, fill quantity/price and status

        Raises:
            ValidationError: Malformed spec.
            GatewayTimeout: Retryable, no venue effect assumed.
            ExchangeError: Venue rejected the order.
        """
        spec.validate_spec()
        logger.info(
            f"Placing {spec.side.value} {spec.type.value} order: {spec.symbol} "
            f"qty={spec.quantity} price={spec.price} stop={spec.stop_price}"
        )
        data = await self._request("POST", "/fapi/v1/order", spec.to_params(), signed=True)
        result = OrderResult.from_venue(data)
        logger.info(f"Order placed: {result.order_id} status={result.status.value}")
        return result

    async def cancel_order(self, symbol: str, order_id: str) -> OrderResult:
        """Cancel an open order."""
        logger.info(f"Cancelling order {order_id} for {symbol}")
        data = await self._request(
            "DELETE", "/fapi/v1/order", {"symbol": symbol, "orderId": order_id}, signed=True
        )
        return OrderResult.from_venue(data)

    async def get_order(self, symbol: str, order_id: str) -> OrderResult:
        """Current venue state of one order (fills, status)."""
        data = await self._request(
            "GET", "/fapi/v1/order", {"symbol": symbol, "orderId": order_id}, signed=True
        )
        return OrderResult.from_venue(data)

    async def get_open_orders(self, symbol: str | None = None) -> list[OrderResult]:
        data = await self._request("GET", "/fapi/v1/openOrders", {"symbol": symbol}, signed=True)
        return [OrderResult.from_venue(item) for item in data]

    async def get_all_orders(self, symbol: str, limit: int = 500) -> list[OrderResult]:
        """Open, filled and cancelled orders for a symbol, oldest first."""
        data = await self._request(
            "GET", "/fapi/v1/allOrders", {"symbol": symbol, "limit": limit}, signed=True
        )
        return [OrderResult.from_venue(item) for item in data]


class GatewayPool:
    """One client per credential context, so rate limits stay per context."""

    def __init__(
        self,
        timeout: float = 10.0,
        calls_per_minute: int = 1200,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout = timeout
        self.calls_per_minute = calls_per_minute
        self._transport = transport
        self._clients: dict[tuple[str, bool], BinanceRestClient] = {}
        self._public: dict[bool, BinanceRestClient] = {}

    def get(self, credentials: ExchangeCredentials) -> BinanceRestClient:
        """Client bound to ``credentials``."""
        key = credentials.context_key
        client = self._clients.get(key)
        if client is None:
            client = BinanceRestClient(
                credentials,
                timeout=self.timeout,
                calls_per_minute=self.calls_per_minute,
                transport=self._transport,
            )
            self._clients[key] = client
        return client

    def public(self, testnet: bool = False) -> BinanceRestClient:
        """Unauthenticated client for market data."""
        client = self._public.get(testnet)
        if client is None:
            client = BinanceRestClient(
                timeout=self.timeout,
                calls_per_minute=self.calls_per_minute,
                testnet=testnet,
                transport=self._transport,
            )
            self._public[testnet] = client
        return client

    async def close(self) -> None:
        """Close every pooled client."""
        for client in [*self._clients.values(), *self._public.values()]:
            await client.close()
        self._clients.clear()
        self._public.clear()
