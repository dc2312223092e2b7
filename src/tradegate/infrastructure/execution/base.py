# src/tradegate/infrastructure/execution/base.py
"""
Common types for venue clients.

A venue client places one order per call and either returns an OrderResult or
raises a RouterError subclass. Classification of venue responses:
  - transport errors and timeouts, HTTP 429, HTTP 5xx -> RouterTransientError
  - any other non-2xx (bad symbol, precision, balance)  -> RouterTerminalError

A terminal rejection of a reused client order id means the venue already holds
the order (an earlier attempt whose response was lost); the router then looks
it up with fetch_order instead of recording a failure.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_FLOOR
from typing import Any, Dict, List, Optional

import httpx

from tradegate.domain.errors import RouterTerminalError, RouterTransientError

log = logging.getLogger(__name__)


@dataclass
class OrderRequest:
    symbol: str
    side: str  # BUY / SELL
    units: Decimal
    entry: Decimal
    stop: Decimal
    targets: List[Decimal]
    client_order_id: str
    order_type: str = "LIMIT"


@dataclass
class OrderResult:
    ok: bool
    payload: Dict[str, Any]
    message: str = ""
    order_id: Optional[str] = None
    quantity: Optional[Decimal] = None
    extra: Dict[str, Any] = field(default_factory=dict)


def floor_to_step(value: Decimal, step: Decimal) -> Decimal:
    """Rounds down to the nearest multiple of step. Never rounds up."""
    if step <= 0:
        return value
    return (value / step).to_integral_value(rounding=ROUND_FLOOR) * step


def format_decimal(value: Decimal) -> str:
    text = format(value.normalize(), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def _response_body(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {"text": response.text[:500]}
    return body if isinstance(body, dict) else {"data": body}


def raise_for_venue_response(response: httpx.Response, venue: str) -> Dict[str, Any]:
    """Returns the decoded body on 2xx, raises a classified RouterError otherwise."""
    body = _response_body(response)
    status = response.status_code
    if 200 <= status < 300:
        return body
    message = f"{venue} HTTP {status}: {str(body)[:200]}"
    if status == 429 or status >= 500:
        raise RouterTransientError(message, venue=venue, payload=body)
    raise RouterTerminalError(message, venue=venue, payload=body)


class VenueClient(ABC):
    """An execution venue reachable over HTTP."""

    name: str = "venue"
    # Lot step used when no venue metadata is available (e.g. paper mode).
    DEFAULT_STEP: Decimal = Decimal("1")

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def _send(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            response = await self.client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            raise RouterTransientError(f"{self.name} transport error: {e.__class__.__name__}: {e}", venue=self.name) from e
        return raise_for_venue_response(response, self.name)

    async def round_quantity(self, symbol: str, units: Decimal) -> Decimal:
        return floor_to_step(units, self.DEFAULT_STEP)

    @abstractmethod
    async def place_order(self, order: OrderRequest) -> OrderResult:
        ...

    def is_duplicate_order(self, error: RouterTerminalError) -> bool:
        """True when the venue rejected an order because its client order id is already in use."""
        return False

    async def fetch_order(self, symbol: str, client_order_id: str) -> Optional[OrderResult]:
        """Looks up an order previously accepted under client_order_id."""
        return None

    async def aclose(self) -> None:
        await self.client.aclose()
