# src/tradegate/infrastructure/execution/oanda_exec.py
"""OANDA v20 REST client for FX pairs, metals and commodity CFDs."""

import logging
from decimal import Decimal
from typing import Optional

import httpx

from tradegate.domain.errors import RouterTerminalError
from .base import VenueClient, OrderRequest, OrderResult, format_decimal

log = logging.getLogger(__name__)

# Commodity tickers as OANDA names its CFD instruments.
_INSTRUMENT_ALIASES = {"CL": "WTICO_USD", "GC": "XAU_USD"}


def to_instrument(symbol: str) -> str:
    """EURUSD -> EUR_USD; CL -> WTICO_USD."""
    s = symbol.upper()
    if s in _INSTRUMENT_ALIASES:
        return _INSTRUMENT_ALIASES[s]
    if len(s) == 6:
        return f"{s[:3]}_{s[3:]}"
    return s


class OandaExec(VenueClient):
    name = "oanda"
    DEFAULT_STEP = Decimal("1")

    def __init__(
        self,
        api_key: str,
        account_id: str,
        base_url: str = "https://api-fxpractice.oanda.com",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.account_id = account_id
        super().__init__(client or httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
            timeout=timeout,
        ))

    async def place_order(self, order: OrderRequest) -> OrderResult:
        # OANDA encodes direction in the sign of units.
        signed_units = order.units if order.side.upper() == "BUY" else -order.units
        body = {
            "order": {
                "instrument": to_instrument(order.symbol),
                "units": format_decimal(signed_units),
                "type": "MARKET",
                "positionFill": "DEFAULT",
                "stopLossOnFill": {"price": format_decimal(order.stop)},
                "clientExtensions": {"id": order.client_order_id},
            }
        }
        if order.targets:
            body["order"]["takeProfitOnFill"] = {"price": format_decimal(order.targets[0])}

        payload = await self._send("POST", f"/v3/accounts/{self.account_id}/orders", json=body)
        tx = payload.get("orderFillTransaction") or payload.get("orderCreateTransaction") or {}
        log.info("oanda order accepted: %s units=%s cid=%s", body["order"]["instrument"],
                 body["order"]["units"], order.client_order_id)
        return OrderResult(ok=True, payload=payload, order_id=tx.get("id"), quantity=order.units)

    def is_duplicate_order(self, error: RouterTerminalError) -> bool:
        reject = error.payload.get("orderRejectTransaction") or {}
        reason = error.payload.get("errorCode") or reject.get("rejectReason")
        return reason == "CLIENT_ORDER_ID_ALREADY_EXISTS"

    async def fetch_order(self, symbol: str, client_order_id: str) -> Optional[OrderResult]:
        payload = await self._send("GET", f"/v3/accounts/{self.account_id}/orders/@{client_order_id}")
        order = payload.get("order") or {}
        if not order.get("id"):
            return None
        log.info("oanda order %s found for cid=%s (state=%s)", order["id"], client_order_id, order.get("state"))
        units = order.get("units")
        return OrderResult(ok=True, payload=payload, order_id=order["id"],
                           quantity=abs(Decimal(str(units))) if units is not None else None)
