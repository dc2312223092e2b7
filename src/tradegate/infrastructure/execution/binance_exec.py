# src/tradegate/infrastructure/execution/binance_exec.py

import time
import hmac
import hashlib
import logging
from urllib.parse import urlencode
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Dict, Any, Tuple

import httpx

from tradegate.domain.errors import RouterTerminalError
from .base import VenueClient, OrderRequest, OrderResult, floor_to_step, format_decimal

log = logging.getLogger(__name__)

BINANCE_SPOT_BASE = "https://api.binance.com"
BINANCE_FUTU_BASE = "https://fapi.binance.com"


@dataclass
class BinanceCreds:
    api_key: str
    api_secret: str


class BinanceExec(VenueClient):
    """
    Signed Binance client (Spot or USDⓈ-M Futures) on httpx.AsyncClient.
    Orders carry `newClientOrderId` so a retried submission is recognised by
    the exchange as the same order.
    """

    name = "binance"
    DEFAULT_STEP = Decimal("0.000001")

    def __init__(
        self,
        creds: BinanceCreds,
        futures: bool = False,
        recv_window: int = 5000,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.creds = creds
        self.is_futures = futures
        self.recv_window = recv_window
        base_url = BINANCE_FUTU_BASE if futures else BINANCE_SPOT_BASE
        super().__init__(client or httpx.AsyncClient(
            base_url=base_url,
            headers={"X-MBX-APIKEY": self.creds.api_key},
            timeout=timeout,
        ))
        self._filters_cache: Dict[str, Tuple[Decimal, Decimal]] = {}

    def _sign(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Creates the required HMAC-SHA256 signature for signed endpoints."""
        params["timestamp"] = int(time.time() * 1000)
        params["recvWindow"] = self.recv_window
        query_string = urlencode(params, doseq=True)
        signature = hmac.new(self.creds.api_secret.encode(), query_string.encode(), hashlib.sha256).hexdigest()
        params["signature"] = signature
        return params

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None, signed: bool = False) -> Dict[str, Any]:
        request_params = params.copy() if params else {}
        if signed:
            request_params = self._sign(request_params)
        return await self._send("GET", path, params=request_params)

    async def _post(self, path: str, params: Optional[Dict[str, Any]] = None, signed: bool = False) -> Dict[str, Any]:
        request_params = params.copy() if params else {}
        if signed:
            request_params = self._sign(request_params)
        return await self._send("POST", path, params=request_params)

    async def exchange_info(self, symbol: str) -> Dict[str, Any]:
        path = "/fapi/v1/exchangeInfo" if self.is_futures else "/api/v3/exchangeInfo"
        data = await self._get(path, {"symbol": symbol.upper()})
        symbols = data.get("symbols") or []
        for info in symbols:
            if info.get("symbol") == symbol.upper():
                return info
        raise RouterTerminalError(f"binance: unknown symbol {symbol}", venue=self.name, payload=data)

    @staticmethod
    def _filters(info: Dict[str, Any]) -> Tuple[Decimal, Decimal]:
        """Extracts LOT_SIZE stepSize and PRICE_FILTER tickSize."""
        step, tick = Decimal("0"), Decimal("0")
        for f in info.get("filters", []):
            t = (f.get("filterType") or "").strip().upper()
            if t == "LOT_SIZE":
                step = Decimal(str(f.get("stepSize", "0")))
            elif t == "PRICE_FILTER":
                tick = Decimal(str(f.get("tickSize", "0")))
        return step, tick

    async def _symbol_filters(self, symbol: str) -> Tuple[Decimal, Decimal]:
        key = symbol.upper()
        if key not in self._filters_cache:
            step, tick = self._filters(await self.exchange_info(key))
            self._filters_cache[key] = (step or self.DEFAULT_STEP, tick)
        return self._filters_cache[key]

    async def round_quantity(self, symbol: str, units: Decimal) -> Decimal:
        step, _ = await self._symbol_filters(symbol)
        return floor_to_step(units, step)

    async def place_order(self, order: OrderRequest) -> OrderResult:
        _, tick = await self._symbol_filters(order.symbol)
        params = {
            "symbol": order.symbol.upper(),
            "side": order.side.upper(),
            "type": order.order_type.upper(),
            "quantity": format_decimal(order.units),
            "newClientOrderId": order.client_order_id,
        }
        if params["type"] == "LIMIT":
            params["price"] = format_decimal(floor_to_step(order.entry, tick))
            params["timeInForce"] = "GTC"

        path = "/fapi/v1/order" if self.is_futures else "/api/v3/order"
        payload = await self._post(path, params, signed=True)
        log.info("binance order accepted: %s %s qty=%s cid=%s",
                 params["side"], params["symbol"], params["quantity"], order.client_order_id)
        return OrderResult(
            ok=True,
            payload=payload,
            order_id=str(payload.get("orderId")) if payload.get("orderId") is not None else None,
            quantity=order.units,
        )

    def is_duplicate_order(self, error: RouterTerminalError) -> bool:
        code = error.payload.get("code")
        msg = str(error.payload.get("msg", "")).lower()
        # Spot: -2010 "Duplicate order sent."; futures: -4116 "ClientOrderId is duplicated."
        return code == -4116 or (code == -2010 and "duplicate" in msg)

    async def fetch_order(self, symbol: str, client_order_id: str) -> Optional[OrderResult]:
        path = "/fapi/v1/order" if self.is_futures else "/api/v3/order"
        payload = await self._get(path, {"symbol": symbol.upper(), "origClientOrderId": client_order_id}, signed=True)
        if payload.get("orderId") is None:
            return None
        log.info("binance order %s found for cid=%s (status=%s)", payload["orderId"], client_order_id, payload.get("status"))
        return OrderResult(
            ok=True,
            payload=payload,
            order_id=str(payload["orderId"]),
            quantity=Decimal(str(payload["origQty"])) if payload.get("origQty") is not None else None,
        )
