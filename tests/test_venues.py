import json
import pytest
from decimal import Decimal
from urllib.parse import parse_qs, urlparse

import httpx

from tradegate.domain.errors import RouterTerminalError, RouterTransientError
from tradegate.infrastructure.execution.alpaca_exec import AlpacaExec
from tradegate.infrastructure.execution.base import OrderRequest
from tradegate.infrastructure.execution.binance_exec import BinanceCreds, BinanceExec
from tradegate.infrastructure.execution.oanda_exec import OandaExec, to_instrument

EXCHANGE_INFO = {
    "symbols": [{
        "symbol": "BTCUSDT",
        "filters": [
            {"filterType": "PRICE_FILTER", "tickSize": "0.10"},
            {"filterType": "LOT_SIZE", "stepSize": "0.001"},
        ],
    }]
}


def _order(**overrides) -> OrderRequest:
    fields = dict(
        symbol="BTCUSDT", side="BUY", units=Decimal("1.234"), entry=Decimal("65000.37"),
        stop=Decimal("64000"), targets=[Decimal("67000")], client_order_id="tg-1-0123456789abcdef",
    )
    fields.update(overrides)
    return OrderRequest(**fields)


def _binance(handler) -> BinanceExec:
    client = httpx.AsyncClient(base_url="https://api.binance.com", transport=httpx.MockTransport(handler))
    return BinanceExec(BinanceCreds("key", "secret"), futures=False, client=client)


# --- Binance ---

@pytest.mark.asyncio
async def test_binance_rounds_down_to_lot_step():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/v3/exchangeInfo"
        return httpx.Response(200, json=EXCHANGE_INFO)

    venue = _binance(handler)
    assert await venue.round_quantity("BTCUSDT", Decimal("1.23456")) == Decimal("1.234")
    await venue.aclose()


@pytest.mark.asyncio
async def test_binance_places_signed_limit_order_with_client_id():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("exchangeInfo"):
            return httpx.Response(200, json=EXCHANGE_INFO)
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["params"] = {k: v[0] for k, v in parse_qs(urlparse(str(request.url)).query).items()}
        return httpx.Response(200, json={"orderId": 123456, "status": "NEW"})

    venue = _binance(handler)
    result = await venue.place_order(_order())
    await venue.aclose()

    assert result.ok and result.order_id == "123456"
    assert seen["method"] == "POST"
    assert seen["path"] == "/api/v3/order"
    params = seen["params"]
    assert params["newClientOrderId"] == "tg-1-0123456789abcdef"
    assert params["quantity"] == "1.234"
    assert params["price"] == "65000.3"
    assert params["type"] == "LIMIT"
    assert "signature" in params


@pytest.mark.asyncio
async def test_binance_unknown_symbol_is_terminal():
    venue = _binance(lambda request: httpx.Response(200, json={"symbols": []}))
    with pytest.raises(RouterTerminalError):
        await venue.round_quantity("NOPEUSDT", Decimal("1"))
    await venue.aclose()


@pytest.mark.parametrize("status, error", [
    (429, RouterTransientError),
    (503, RouterTransientError),
    (400, RouterTerminalError),
    (401, RouterTerminalError),
])
@pytest.mark.asyncio
async def test_binance_http_errors_are_classified(status, error):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("exchangeInfo"):
            return httpx.Response(200, json=EXCHANGE_INFO)
        return httpx.Response(status, json={"code": -1, "msg": "nope"})

    venue = _binance(handler)
    with pytest.raises(error):
        await venue.place_order(_order())
    await venue.aclose()


@pytest.mark.asyncio
async def test_transport_failure_is_transient():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    venue = _binance(handler)
    with pytest.raises(RouterTransientError):
        await venue.round_quantity("BTCUSDT", Decimal("1"))
    await venue.aclose()


# --- OANDA ---

def test_oanda_instrument_names():
    assert to_instrument("EURUSD") == "EUR_USD"
    assert to_instrument("CL") == "WTICO_USD"
    assert to_instrument("GC") == "XAU_USD"


@pytest.mark.asyncio
async def test_oanda_sell_order_uses_negative_units_and_brackets():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"orderCreateTransaction": {"id": "42"}})

    client = httpx.AsyncClient(base_url="https://api-fxpractice.oanda.com", transport=httpx.MockTransport(handler))
    venue = OandaExec("token", "001-001", client=client)
    result = await venue.place_order(_order(
        symbol="EURUSD", side="SELL", units=Decimal("25000"), entry=Decimal("1.1"),
        stop=Decimal("1.11"), targets=[Decimal("1.08")],
    ))
    await venue.aclose()

    order = seen["body"]["order"]
    assert seen["path"] == "/v3/accounts/001-001/orders"
    assert order["instrument"] == "EUR_USD"
    assert order["units"] == "-25000"
    assert order["stopLossOnFill"] == {"price": "1.11"}
    assert order["takeProfitOnFill"] == {"price": "1.08"}
    assert order["clientExtensions"] == {"id": "tg-1-0123456789abcdef"}
    assert result.order_id == "42"


# --- Alpaca ---

@pytest.mark.asyncio
async def test_alpaca_limit_order_carries_client_order_id():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "a1b2", "status": "accepted"})

    client = httpx.AsyncClient(base_url="https://paper-api.alpaca.markets", transport=httpx.MockTransport(handler))
    venue = AlpacaExec("key", "secret", client=client)
    result = await venue.place_order(_order(symbol="AAPL", units=Decimal("12"), entry=Decimal("190.5")))
    await venue.aclose()

    body = seen["body"]
    assert seen["path"] == "/v2/orders"
    assert body["qty"] == "12"
    assert body["side"] == "buy"
    assert body["type"] == "limit"
    assert body["limit_price"] == "190.5"
    assert body["client_order_id"] == "tg-1-0123456789abcdef"
    assert result.order_id == "a1b2"


@pytest.mark.asyncio
async def test_alpaca_duplicate_client_id_is_looked_up():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "GET"
        assert request.url.path == "/v2/orders:by_client_order_id"
        assert request.url.params["client_order_id"] == "tg-1-0123456789abcdef"
        return httpx.Response(200, json={"id": "a1b2", "status": "new", "qty": "12"})

    client = httpx.AsyncClient(base_url="https://paper-api.alpaca.markets", transport=httpx.MockTransport(handler))
    venue = AlpacaExec("key", "secret", client=client)
    duplicate = RouterTerminalError("alpaca HTTP 422", payload={"code": 40010001, "message": "client_order_id must be unique"})
    balance = RouterTerminalError("alpaca HTTP 403", payload={"code": 40310000, "message": "insufficient buying power"})

    assert venue.is_duplicate_order(duplicate)
    assert not venue.is_duplicate_order(balance)
    found = await venue.fetch_order("AAPL", "tg-1-0123456789abcdef")
    await venue.aclose()

    assert found.order_id == "a1b2"
    assert found.quantity == Decimal("12")


@pytest.mark.asyncio
async def test_oanda_duplicate_client_id_is_looked_up():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v3/accounts/001-001/orders/@tg-1-0123456789abcdef"
        return httpx.Response(200, json={"order": {"id": "42", "state": "FILLED", "units": "-1000"}})

    client = httpx.AsyncClient(base_url="https://api-fxpractice.oanda.com", transport=httpx.MockTransport(handler))
    venue = OandaExec("token", "001-001", client=client)
    duplicate = RouterTerminalError("oanda HTTP 400", payload={
        "orderRejectTransaction": {"rejectReason": "CLIENT_ORDER_ID_ALREADY_EXISTS"},
        "errorCode": "CLIENT_ORDER_ID_ALREADY_EXISTS",
    })

    assert venue.is_duplicate_order(duplicate)
    assert not venue.is_duplicate_order(RouterTerminalError("oanda HTTP 400", payload={"errorCode": "MARKET_HALTED"}))
    found = await venue.fetch_order("EURUSD", "tg-1-0123456789abcdef")
    await venue.aclose()

    assert found.order_id == "42"
    assert found.quantity == Decimal("1000")
