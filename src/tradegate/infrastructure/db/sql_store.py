# src/tradegate/infrastructure/db/sql_store.py
"""
SQLAlchemy implementation of AlertStore.

Admission relies on the unique fingerprint column: a losing concurrent insert
raises IntegrityError and is answered with the winner's id. Status changes are
a single conditional UPDATE whose rowcount says who won.
"""

import logging
from datetime import date
from decimal import Decimal
from functools import wraps
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from tradegate.domain.entities import Alert, AlertStatus, Trade
from tradegate.domain.errors import StoreUnavailable
from tradegate.infrastructure.store import AlertStore, TransitionResult, allowed_sources
from .repository import (
    AlertRepository, TradeRepository, DailyPnlRepository, to_alert_entity, to_trade_entity
)
from .uow import session_scope

log = logging.getLogger(__name__)

_COUNTER_RETRIES = 3


def _db_guard(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except SQLAlchemyError as e:
            log.error("Store operation %s failed: %s", func.__name__, e)
            raise StoreUnavailable(f"{func.__name__} failed: {e.__class__.__name__}") from e
    return wrapper


class SqlAlchemyAlertStore(AlertStore):
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def _scope(self):
        return session_scope(self._session_factory)

    @_db_guard
    def insert_if_absent(self, fingerprint: str, payload: Dict[str, Any]) -> Tuple[bool, int]:
        try:
            with self._scope() as session:
                repo = AlertRepository(session)
                existing = repo.find_id_by_fingerprint(fingerprint)
                if existing is not None:
                    return False, existing
                row = repo.add(fingerprint, payload)
                alert_id = row.id
        except IntegrityError:
            # Lost the race to a concurrent insert of the same fingerprint.
            with self._scope() as session:
                existing = AlertRepository(session).find_id_by_fingerprint(fingerprint)
            if existing is None:
                raise
            return False, existing
        return True, alert_id

    @_db_guard
    def get(self, alert_id: int) -> Optional[Alert]:
        with self._scope() as session:
            row = AlertRepository(session).get(alert_id)
            return to_alert_entity(row) if row else None

    @_db_guard
    def get_by_fingerprint(self, fingerprint: str) -> Optional[Alert]:
        with self._scope() as session:
            row = AlertRepository(session).find_by_fingerprint(fingerprint)
            return to_alert_entity(row) if row else None

    @_db_guard
    def update_status(
        self,
        alert_id: int,
        expected: Iterable[AlertStatus],
        new: AlertStatus,
        reason: Optional[str] = None,
    ) -> TransitionResult:
        sources = allowed_sources(expected, new)
        with self._scope() as session:
            repo = AlertRepository(session)
            if repo.compare_and_set_status(alert_id, sources, new, reason):
                return TransitionResult(True, new)
            return TransitionResult(False, repo.current_status(alert_id))

    @_db_guard
    def update_meta(self, alert_id: int, patch: Dict[str, Any]) -> None:
        with self._scope() as session:
            if not AlertRepository(session).merge_meta(alert_id, patch):
                log.warning("update_meta: alert %s not found", alert_id)

    @_db_guard
    def list_by_status(self, status: AlertStatus) -> List[Alert]:
        with self._scope() as session:
            return [to_alert_entity(r) for r in AlertRepository(session).list_by_status(status)]

    @_db_guard
    def insert_trade(self, trade: Trade) -> None:
        with self._scope() as session:
            TradeRepository(session).add(trade)

    @_db_guard
    def list_trades(self, alert_id: int) -> List[Trade]:
        with self._scope() as session:
            return [to_trade_entity(r) for r in TradeRepository(session).list_for_alert(alert_id)]

    @_db_guard
    def upsert_daily_counter(self, day: date, delta: Decimal) -> Decimal:
        for _ in range(_COUNTER_RETRIES):
            try:
                with self._scope() as session:
                    repo = DailyPnlRepository(session)
                    if not repo.increment(day, delta):
                        repo.create(day, delta)
                    session.flush()
                    return repo.get(day)
            except IntegrityError:
                # Another writer created the row first; the next pass increments it.
                continue
        raise StoreUnavailable(f"Could not update daily counter for {day}")

    @_db_guard
    def get_daily_counter(self, day: date) -> Decimal:
        with self._scope() as session:
            return DailyPnlRepository(session).get(day)

    def close(self) -> None:
        bind = self._session_factory.kw.get("bind")
        if bind is not None:
            bind.dispose()
