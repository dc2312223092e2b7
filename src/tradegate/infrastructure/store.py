# src/tradegate/infrastructure/store.py
"""
Idempotency store contract.

Every operation is atomic on its own. Admission is a single insert-if-absent
keyed by fingerprint and status changes are compare-and-set, so concurrent
callers never both observe "new" or both win the same transition.
Backend faults surface as StoreUnavailable.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from tradegate.domain.entities import Alert, AlertStatus, Trade, can_transition

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a compare-and-set. `status` is what the store holds afterwards."""
    changed: bool
    status: Optional[AlertStatus]


def allowed_sources(expected: Iterable[AlertStatus], new: AlertStatus) -> List[AlertStatus]:
    """Filters `expected` down to states from which `new` is a legal move."""
    sources = [s for s in expected if can_transition(s, new)]
    if not sources:
        raise ValueError(f"No legal transition to {new.value} from {[s.value for s in expected]}")
    return sources


class AlertStore(ABC):

    @abstractmethod
    def insert_if_absent(self, fingerprint: str, payload: Dict[str, Any]) -> Tuple[bool, int]:
        """Returns (is_new, alert_id). Exactly one concurrent caller sees is_new=True."""

    @abstractmethod
    def get(self, alert_id: int) -> Optional[Alert]:
        ...

    @abstractmethod
    def get_by_fingerprint(self, fingerprint: str) -> Optional[Alert]:
        ...

    @abstractmethod
    def update_status(
        self,
        alert_id: int,
        expected: Iterable[AlertStatus],
        new: AlertStatus,
        reason: Optional[str] = None,
    ) -> TransitionResult:
        """Moves the alert to `new` only if it is currently in one of `expected`."""

    @abstractmethod
    def update_meta(self, alert_id: int, patch: Dict[str, Any]) -> None:
        """Shallow-merges `patch` into the alert's metadata."""

    @abstractmethod
    def list_by_status(self, status: AlertStatus) -> List[Alert]:
        ...

    @abstractmethod
    def insert_trade(self, trade: Trade) -> None:
        ...

    @abstractmethod
    def list_trades(self, alert_id: int) -> List[Trade]:
        ...

    @abstractmethod
    def upsert_daily_counter(self, day: date, delta: Decimal) -> Decimal:
        """Atomically adds `delta` to the day's realized P&L and returns the new total."""

    @abstractmethod
    def get_daily_counter(self, day: date) -> Decimal:
        ...

    def close(self) -> None:
        pass


def build_alert_store(settings) -> AlertStore:
    """Chooses the backend named by STORE_BACKEND."""
    backend = (settings.STORE_BACKEND or "sql").strip().lower()
    if backend == "redis":
        import redis
        from .redis_store import RedisAlertStore

        if not settings.REDIS_URL:
            raise RuntimeError("STORE_BACKEND=redis requires REDIS_URL")
        client = redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)
        log.info("Using Redis alert store.")
        return RedisAlertStore(client)

    from .db.base import SessionLocal
    from .db.sql_store import SqlAlchemyAlertStore

    log.info("Using SQL alert store.")
    return SqlAlchemyAlertStore(SessionLocal)
