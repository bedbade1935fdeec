"""Tests for the Binance Futures REST client (httpx.MockTransport, no network)."""

from decimal import Decimal
from urllib.parse import parse_qs

import httpx
import pytest

from signal_app.clients import BinanceRestClient, GatewayPool, sign
from signal_core.errors import (
    CredentialsNotFound,
    ExchangeError,
    GatewayTimeout,
    ValidationError,
)
from signal_core.models import (
    ExchangeCredentials,
    OrderSide,
    OrderSpec,
    OrderStatus,
    OrderType,
)

CREDS = ExchangeCredentials(api_key="test-key", secret_key="test-secret", is_testnet=True)

ORDER_ACK = {
    "orderId": 4242,
    "symbol": "BTCUSDT",
    "status": "FILLED",
    "side": "BUY",
    "type": "MARKET",
    "origQty": "0.001",
    "executedQty": "0.001",
    "avgPrice": "64000.5",
    "updateTime": 1772452800000,
}


class Recorder:
    """MockTransport handler that records requests and replays responses."""

    def __init__(self, response=None, status_code=200, exc=None):
        self.requests: list[httpx.Request] = []
        self.response = response if response is not None else {}
        self.status_code = status_code
        self.exc = exc

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.exc is not None:
            raise self.exc(f"mock {self.exc.__name__}", request=request)
        return httpx.Response(self.status_code, json=self.response)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


def make_client(recorder: Recorder, credentials=CREDS, **kwargs) -> BinanceRestClient:
    return BinanceRestClient(
        credentials,
        calls_per_minute=60000,
        transport=httpx.MockTransport(recorder),
        **kwargs,
    )


class TestSign:
    def test_reference_vector(self):
        secret = "NhqPtmdSJYdKjVHjA7PZj4Mge3R5YNiP1e3UZjInClVN65XAbvqqM6A7H5fATj0j"
        query = (
            "symbol=LTCBTC&side=BUY&type=LIMIT&timeInForce=GTC&quantity=1"
            "&price=0.1&recvWindow=5000&timestamp=1499827319559"
        )
        assert sign(query, secret) == (
            "c8db56825ae71d6d79447849e617115f4a920fa2acdcab2b053c4b2838bd6b71"
        )


class TestBinanceRestClient:
    @pytest.mark.asyncio
    async def test_place_order_is_signed(self):
        recorder = Recorder(ORDER_ACK)
        async with make_client(recorder) as client:
            spec = OrderSpec(symbol="BTCUSDT", side=OrderSide.BUY, quantity=Decimal("0.001"))
            result = await client.place_order(spec)

        request = recorder.last
        assert request.method == "POST"
        assert request.url.host == "testnet.binancefuture.com"
        assert request.url.path == "/fapi/v1/order"
        assert request.headers["X-MBX-APIKEY"] == "test-key"

        query = request.url.query.decode()
        payload, signature = query.rsplit("&signature=", 1)
        assert signature == sign(payload, "test-secret")
        params = parse_qs(payload)
        assert params["symbol"] == ["BTCUSDT"]
        assert params["type"] == ["MARKET"]
        assert params["newOrderRespType"] == ["RESULT"]
        assert "timestamp" in params

        assert result.order_id == "4242"
        assert result.status == OrderStatus.FILLED
        assert result.avg_price == Decimal("64000.5")

    @pytest.mark.asyncio
    async def test_limit_order_sends_time_in_force(self):
        recorder = Recorder({**ORDER_ACK, "type": "LIMIT", "status": "NEW"})
        async with make_client(recorder) as client:
            spec = OrderSpec(
                symbol="BTCUSDT",
                side=OrderSide.BUY,
                type=OrderType.LIMIT,
                quantity=Decimal("0.001"),
                price=Decimal("60000"),
            )
            await client.place_order(spec)

        params = recorder.last.url.params
        assert params["timeInForce"] == "GTC"
        assert params["price"] == "60000"

    @pytest.mark.asyncio
    async def test_invalid_spec_never_reaches_network(self):
        recorder = Recorder(ORDER_ACK)
        async with make_client(recorder) as client:
            spec = OrderSpec(
                symbol="BTCUSDT", side=OrderSide.BUY, type=OrderType.LIMIT, quantity=Decimal("1")
            )
            with pytest.raises(ValidationError):
                await client.place_order(spec)

        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_venue_rejection_is_exchange_error(self):
        recorder = Recorder({"code": -2019, "msg": "Margin is insufficient."}, status_code=400)
        async with make_client(recorder) as client:
            spec = OrderSpec(symbol="BTCUSDT", side=OrderSide.BUY, quantity=Decimal("5"))
            with pytest.raises(ExchangeError) as exc_info:
                await client.place_order(spec)

        err = exc_info.value
        assert err.venue_message == "Margin is insufficient."
        assert err.code == -2019
        assert err.status_code == 400
        assert not err.retryable
        assert "Margin is insufficient." in str(err)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("exc", [httpx.ReadTimeout, httpx.ConnectError])
    async def test_timeout_is_retryable(self, exc):
        recorder = Recorder(exc=exc)
        async with make_client(recorder) as client:
            spec = OrderSpec(symbol="BTCUSDT", side=OrderSide.BUY, quantity=Decimal("1"))
            with pytest.raises(GatewayTimeout) as exc_info:
                await client.place_order(spec)

        assert exc_info.value.retryable
        assert exc_info.value.endpoint == "/fapi/v1/order"

    @pytest.mark.asyncio
    async def test_public_call_is_unsigned(self):
        kline = [1772452800000, "100", "102", "99", "101", "5", 1772456399999, "505", 12]
        recorder = Recorder([kline, kline])
        async with make_client(recorder, credentials=None) as client:
            candles = await client.get_klines("BTCUSDT", "1h", limit=2)

        request = recorder.last
        assert request.url.host == "fapi.binance.com"
        assert "signature" not in request.url.params
        assert "timestamp" not in request.url.params
        assert "X-MBX-APIKEY" not in request.headers
        assert request.url.params["interval"] == "1h"
        assert len(candles) == 2
        assert candles[0].close == Decimal("101")

    @pytest.mark.asyncio
    async def test_kline_limit_capped(self):
        recorder = Recorder([])
        async with make_client(recorder, credentials=None) as client:
            await client.get_klines("BTCUSDT", "1m", limit=5000)
        assert recorder.last.url.params["limit"] == "1500"

    @pytest.mark.asyncio
    async def test_signed_call_without_credentials(self):
        recorder = Recorder([])
        async with make_client(recorder, credentials=None) as client:
            with pytest.raises(CredentialsNotFound):
                await client.get_balance()
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_positions_drop_flat_entries(self):
        recorder = Recorder(
            [
                {"symbol": "BTCUSDT", "positionAmt": "0.010"},
                {"symbol": "ETHUSDT", "positionAmt": "0.000"},
                {"symbol": "SOLUSDT", "positionAmt": "-3"},
            ]
        )
        async with make_client(recorder) as client:
            positions = await client.get_positions()
            everything = await client.get_positions(active_only=False)

        assert [p["symbol"] for p in positions] == ["BTCUSDT", "SOLUSDT"]
        assert len(everything) == 3

    @pytest.mark.asyncio
    async def test_cancel_and_open_orders(self):
        recorder = Recorder({**ORDER_ACK, "status": "CANCELED"})
        async with make_client(recorder) as client:
            result = await client.cancel_order("BTCUSDT", "4242")
        assert recorder.last.method == "DELETE"
        assert recorder.last.url.params["orderId"] == "4242"
        assert result.status == OrderStatus.CANCELED

        recorder = Recorder([ORDER_ACK])
        async with make_client(recorder) as client:
            orders = await client.get_open_orders()
        assert "symbol" not in recorder.last.url.params
        assert [o.order_id for o in orders] == ["4242"]

    @pytest.mark.asyncio
    async def test_venue_only_order_types_parse(self):
        trailing = {
            **ORDER_ACK,
            "orderId": 5151,
            "type": "TRAILING_STOP_MARKET",
            "status": "NEW",
            "executedQty": "0",
            "avgPrice": "0",
        }
        recorder = Recorder([ORDER_ACK, trailing])
        async with make_client(recorder) as client:
            orders = await client.get_open_orders("BTCUSDT")
        assert [o.venue_type for o in orders] == ["MARKET", "TRAILING_STOP_MARKET"]
        assert orders[1].type is None

        recorder = Recorder({**trailing, "status": "CANCELED"})
        async with make_client(recorder) as client:
            result = await client.cancel_order("BTCUSDT", "5151")
        assert result.status == OrderStatus.CANCELED
        assert result.venue_type == "TRAILING_STOP_MARKET"

    @pytest.mark.asyncio
    async def test_order_queries(self):
        recorder = Recorder(ORDER_ACK)
        async with make_client(recorder) as client:
            result = await client.get_order("BTCUSDT", "4242")
        assert recorder.last.method == "GET"
        assert recorder.last.url.path == "/fapi/v1/order"
        assert recorder.last.url.params["orderId"] == "4242"
        assert "signature" in recorder.last.url.params
        assert result.executed_qty == Decimal("0.001")

        recorder = Recorder([ORDER_ACK, {**ORDER_ACK, "orderId": 4243, "status": "EXPIRED"}])
        async with make_client(recorder) as client:
            history = await client.get_all_orders("BTCUSDT", limit=10)
        assert recorder.last.url.path == "/fapi/v1/allOrders"
        assert recorder.last.url.params["limit"] == "10"
        assert [o.status for o in history] == [OrderStatus.FILLED, OrderStatus.CANCELED]

    @pytest.mark.asyncio
    async def test_ticker_optional_symbol(self):
        recorder = Recorder({"symbol": "BTCUSDT", "lastPrice": "64000"})
        async with make_client(recorder, credentials=None) as client:
            ticker = await client.get_24h_ticker("BTCUSDT")
        assert recorder.last.url.params["symbol"] == "BTCUSDT"
        assert ticker["lastPrice"] == "64000"

    def test_mode_follows_credentials(self):
        live = ExchangeCredentials(api_key="k", secret_key="s", is_testnet=False)
        assert BinanceRestClient(live).base_url == "https://fapi.binance.com"
        assert BinanceRestClient(CREDS).base_url == "https://testnet.binancefuture.com"


class TestGatewayPool:
    @pytest.mark.asyncio
    async def test_one_client_per_context(self):
        pool = GatewayPool()
        live = ExchangeCredentials(api_key="test-key", secret_key="test-secret", is_testnet=False)

        assert pool.get(CREDS) is pool.get(CREDS)
        assert pool.get(CREDS) is not pool.get(live)
        assert pool.get(CREDS).rate_limiter is not pool.get(live).rate_limiter
        assert pool.public() is pool.public()
        assert pool.public(testnet=True).base_url == "https://testnet.binancefuture.com"

        await pool.close()
