# src/tradegate/infrastructure/execution/alpaca_exec.py
"""Alpaca trading API client for US equities."""

import logging
from decimal import Decimal
from typing import Optional

import httpx

from tradegate.domain.errors import RouterTerminalError
from .base import VenueClient, OrderRequest, OrderResult, format_decimal

log = logging.getLogger(__name__)


class AlpacaExec(VenueClient):
    name = "alpaca"
    DEFAULT_STEP = Decimal("1")

    def __init__(
        self,
        api_key: str,
        secret_key: str,
        base_url: str = "https://paper-api.alpaca.markets",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(client or httpx.AsyncClient(
            base_url=base_url,
            headers={"APCA-API-KEY-ID": api_key, "APCA-API-SECRET-KEY": secret_key},
            timeout=timeout,
        ))

    async def place_order(self, order: OrderRequest) -> OrderResult:
        body = {
            "symbol": order.symbol.upper(),
            "qty": format_decimal(order.units),
            "side": order.side.lower(),
            "type": order.order_type.lower(),
            "time_in_force": "gtc",
            "client_order_id": order.client_order_id,
        }
        if body["type"] == "limit":
            body["limit_price"] = format_decimal(order.entry)

        payload = await self._send("POST", "/v2/orders", json=body)
        log.info("alpaca order accepted: %s %s qty=%s cid=%s", body["side"], body["symbol"],
                 body["qty"], order.client_order_id)
        return OrderResult(ok=True, payload=payload, order_id=payload.get("id"), quantity=order.units)

    def is_duplicate_order(self, error: RouterTerminalError) -> bool:
        return "client_order_id must be unique" in str(error.payload.get("message", "")).lower()

    async def fetch_order(self, symbol: str, client_order_id: str) -> Optional[OrderResult]:
        payload = await self._send("GET", "/v2/orders:by_client_order_id", params={"client_order_id": client_order_id})
        if not payload.get("id"):
            return None
        log.info("alpaca order %s found for cid=%s (status=%s)", payload["id"], client_order_id, payload.get("status"))
        qty = payload.get("qty")
        return OrderResult(ok=True, payload=payload, order_id=payload["id"],
                           quantity=Decimal(str(qty)) if qty is not None else None)
