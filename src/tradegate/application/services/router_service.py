# src/tradegate/application/services/router_service.py

from __future__ import annotations
import asyncio
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Awaitable, Callable, Dict, Mapping, Optional

from tradegate.domain.entities import Alert, SizeInfo, Trade, TradeStatus, Venue
from tradegate.domain.errors import RouterError, RouterTerminalError, RouterTransientError
from tradegate.domain.venues import map_symbol_to_venue
from tradegate.infrastructure.execution.base import OrderRequest, OrderResult, VenueClient, floor_to_step
from tradegate.infrastructure.execution.binance_exec import BinanceExec
from tradegate.infrastructure.execution.oanda_exec import OandaExec
from tradegate.infrastructure.execution.alpaca_exec import AlpacaExec
from tradegate.infrastructure.execution.retry import RetryPolicy, retry_async
from tradegate.interfaces.api.metrics import ORDERS, ROUTER_ATTEMPTS
from .ledger_service import LedgerService

log = logging.getLogger(__name__)

# Venues with an executor, the router name recorded on the trade and the lot
# step used when no venue metadata is fetched (paper mode).
VENUE_ROUTERS: Dict[Venue, tuple] = {
    Venue.CRYPTO: (BinanceExec.name, BinanceExec.DEFAULT_STEP),
    Venue.FX: (OandaExec.name, OandaExec.DEFAULT_STEP),
    Venue.EQUITIES: (AlpacaExec.name, AlpacaExec.DEFAULT_STEP),
}


def client_order_id(alert: Alert) -> str:
    """Stable per alert, so a resubmission after a timeout is the same order to the venue."""
    return f"tg-{alert.id}-{alert.fingerprint[:16]}"


@dataclass(frozen=True)
class TradeResult:
    status: TradeStatus
    trade: Optional[Trade]
    error: Optional[str]
    attempts: int

    @property
    def ok(self) -> bool:
        return self.status != TradeStatus.FAILED


class OrderRouter:
    def __init__(
        self,
        ledger: LedgerService,
        clients: Optional[Mapping[Venue, VenueClient]] = None,
        *,
        paper: bool = True,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.ledger = ledger
        self.clients: Dict[Venue, VenueClient] = dict(clients or {})
        self.paper = paper
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    def _trade(self, alert: Alert, router: str, units: Decimal, status: TradeStatus, **kwargs) -> Trade:
        return Trade(
            id=uuid.uuid4().hex,
            alert_id=alert.id,
            router=router,
            symbol=alert.symbol.value,
            side=alert.side.value,
            entry=alert.entry.value,
            stop=alert.stop.value,
            targets=[t.value for t in alert.targets],
            units=units,
            status=status,
            client_order_id=client_order_id(alert),
            **kwargs,
        )

    def _finish(self, venue: Venue, trade: Trade) -> TradeResult:
        self.ledger.record_trade(trade)
        ORDERS.labels(venue=venue.value, status=trade.status.value).inc()
        return TradeResult(status=trade.status, trade=trade, error=trade.error, attempts=trade.attempts)

    async def execute(self, alert: Alert, size: SizeInfo) -> TradeResult:
        """
        Routes one order for a confirmed alert and records the resulting trade.

        Raises RouterTerminalError, without recording anything, when the symbol
        maps to a venue that has no executor.
        """
        venue = map_symbol_to_venue(alert.symbol)
        if venue not in VENUE_ROUTERS:
            ORDERS.labels(venue=venue.value, status=TradeStatus.FAILED.value).inc()
            raise RouterTerminalError(f"No executor for {alert.symbol.value} (venue={venue.value})", venue=venue.value)
        router_name, paper_step = VENUE_ROUTERS[venue]

        if self.paper:
            units = floor_to_step(size.units, paper_step)
            if units <= 0:
                trade = self._trade(alert, router_name, units, TradeStatus.FAILED,
                                    error=f"quantity {size.units} rounds to zero at step {paper_step}")
                return self._finish(venue, trade)
            trade = self._trade(
                alert, router_name, units, TradeStatus.PAPER_SIMULATED,
                raw_response={"simulated": True, "router": router_name, "units": str(units)},
            )
            log.info("Paper trade for alert %s: %s %s %s via %s", alert.id, trade.side, units, trade.symbol, router_name)
            return self._finish(venue, trade)

        client = self.clients.get(venue)
        if client is None:
            trade = self._trade(alert, router_name, Decimal("0"), TradeStatus.FAILED,
                                error=f"{router_name} is not configured")
            return self._finish(venue, trade)

        attempts = 0
        units = Decimal("0")

        async def _attempt() -> OrderResult:
            nonlocal attempts, units
            attempts += 1
            ROUTER_ATTEMPTS.labels(venue=venue.value).inc()
            units = await client.round_quantity(alert.symbol.value, size.units)
            if units <= 0:
                raise RouterTerminalError(f"quantity {size.units} rounds to zero", venue=router_name)
            request = OrderRequest(
                symbol=alert.symbol.value,
                side=alert.side.value,
                units=units,
                entry=alert.entry.value,
                stop=alert.stop.value,
                targets=[t.value for t in alert.targets],
                client_order_id=client_order_id(alert),
            )
            try:
                return await client.place_order(request)
            except RouterTerminalError as e:
                if not client.is_duplicate_order(e):
                    raise
                log.warning("%s already holds %s for alert %s (attempt %d); looking it up",
                            router_name, request.client_order_id, alert.id, attempts)
                existing = await client.fetch_order(request.symbol, request.client_order_id)
                if existing is None:
                    raise
                return existing

        try:
            result = await retry_async(
                _attempt,
                self.policy,
                lambda e: isinstance(e, RouterTransientError),
                sleep=self._sleep,
                label=f"{router_name} order for alert {alert.id}",
            )
        except RouterError as e:
            log.warning("Routing failed for alert %s after %d attempt(s): %s", alert.id, attempts, e)
            trade = self._trade(alert, router_name, units, TradeStatus.FAILED,
                                error=str(e), raw_response=e.payload, attempts=attempts)
            return self._finish(venue, trade)

        trade = self._trade(
            alert, router_name, result.quantity or units, TradeStatus.SUBMITTED,
            order_id=result.order_id, raw_response=result.payload, attempts=attempts,
        )
        return self._finish(venue, trade)

    async def aclose(self) -> None:
        for client in self.clients.values():
            await client.aclose()
