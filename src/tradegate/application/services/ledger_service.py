# src/tradegate/application/services/ledger_service.py

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Optional

from tradegate.domain.entities import Trade
from tradegate.infrastructure.store import AlertStore

log = logging.getLogger(__name__)


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


@dataclass
class LedgerService:
    """Trades and daily realized P&L. Every read goes to the store."""
    store: AlertStore

    def record_trade(self, trade: Trade) -> None:
        self.store.insert_trade(trade)
        log.info("Recorded trade %s for alert %s: %s via %s", trade.id, trade.alert_id,
                 trade.status.value, trade.router)

    def list_trades(self, alert_id: int) -> List[Trade]:
        return self.store.list_trades(alert_id)

    def get_daily_realized_pnl(self, day: Optional[date] = None) -> Decimal:
        return self.store.get_daily_counter(day or utc_today())

    def adjust_daily_realized_pnl(self, day: Optional[date], delta: Decimal) -> Decimal:
        day = day or utc_today()
        total = self.store.upsert_daily_counter(day, Decimal(delta))
        log.info("Daily realized P&L for %s adjusted by %s -> %s", day.isoformat(), delta, total)
        return total
