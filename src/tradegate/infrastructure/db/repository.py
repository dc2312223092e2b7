# src/tradegate/infrastructure/db/repository.py
"""
Repositories over the ORM models. Each takes an open Session and never commits;
the caller's session_scope owns the transaction.
"""

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from tradegate.domain.entities import Alert, AlertStatus, Trade, TradeStatus, utcnow
from .models import AlertRecord, TradeRecord, DailyPnlRecord

logger = logging.getLogger(__name__)


def _aware(dt: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def to_alert_entity(row: AlertRecord) -> Alert:
    return Alert.from_payload(
        row.payload,
        fingerprint=row.fingerprint,
        id=row.id,
        status=row.status,
        status_reason=row.status_reason,
        meta=dict(row.meta or {}),
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def to_trade_entity(row: TradeRecord) -> Trade:
    return Trade(
        id=row.id,
        alert_id=row.alert_id,
        router=row.router,
        symbol=row.symbol,
        side=row.side,
        entry=Decimal(str(row.entry)),
        stop=Decimal(str(row.stop)),
        targets=[Decimal(str(t)) for t in (row.targets or [])],
        units=Decimal(str(row.units)),
        status=row.status,
        order_id=row.order_id,
        client_order_id=row.client_order_id,
        raw_response=row.raw_response or {},
        error=row.error,
        attempts=row.attempts or 0,
        created_at=_aware(row.created_at),
    )


# ==========================================================
# ALERT REPOSITORY
# ==========================================================
class AlertRepository:
    def __init__(self, session: Session):
        self.session = session

    def find_id_by_fingerprint(self, fingerprint: str) -> Optional[int]:
        stmt = select(AlertRecord.id).where(AlertRecord.fingerprint == fingerprint)
        return self.session.execute(stmt).scalar_one_or_none()

    def find_by_fingerprint(self, fingerprint: str) -> Optional[AlertRecord]:
        stmt = select(AlertRecord).where(AlertRecord.fingerprint == fingerprint)
        return self.session.execute(stmt).scalar_one_or_none()

    def get(self, alert_id: int) -> Optional[AlertRecord]:
        return self.session.get(AlertRecord, alert_id)

    def add(self, fingerprint: str, payload: Dict[str, Any]) -> AlertRecord:
        now = utcnow()
        row = AlertRecord(
            fingerprint=fingerprint,
            symbol=payload["symbol"],
            side=payload["side"],
            timeframe=payload["timeframe"],
            status=AlertStatus.PENDING,
            payload=payload,
            meta={},
            created_at=now,
            updated_at=now,
        )
        self.session.add(row)
        self.session.flush()
        return row

    def compare_and_set_status(
        self, alert_id: int, sources: List[AlertStatus], new: AlertStatus, reason: Optional[str]
    ) -> bool:
        stmt = (
            update(AlertRecord)
            .where(AlertRecord.id == alert_id, AlertRecord.status.in_(sources))
            .values(status=new, status_reason=reason, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return self.session.execute(stmt).rowcount == 1

    def current_status(self, alert_id: int) -> Optional[AlertStatus]:
        stmt = select(AlertRecord.status).where(AlertRecord.id == alert_id)
        return self.session.execute(stmt).scalar_one_or_none()

    def merge_meta(self, alert_id: int, patch: Dict[str, Any]) -> bool:
        row = self.session.get(AlertRecord, alert_id, with_for_update=True)
        if row is None:
            return False
        merged = dict(row.meta or {})
        merged.update(patch)
        row.meta = merged
        row.updated_at = utcnow()
        return True

    def list_by_status(self, status: AlertStatus) -> List[AlertRecord]:
        stmt = select(AlertRecord).where(AlertRecord.status == status).order_by(AlertRecord.id)
        return list(self.session.execute(stmt).scalars().all())


# ==========================================================
# TRADE REPOSITORY
# ==========================================================
class TradeRepository:
    def __init__(self, session: Session):
        self.session = session

    def add(self, trade: Trade) -> TradeRecord:
        row = TradeRecord(
            id=trade.id,
            alert_id=trade.alert_id,
            router=trade.router,
            order_id=trade.order_id,
            client_order_id=trade.client_order_id,
            symbol=trade.symbol,
            side=trade.side,
            entry=trade.entry,
            stop=trade.stop,
            targets=[str(t) for t in trade.targets],
            units=trade.units,
            status=trade.status,
            raw_response=trade.raw_response or None,
            error=trade.error,
            attempts=trade.attempts,
            created_at=trade.created_at,
        )
        self.session.add(row)
        self.session.flush()
        return row

    def list_for_alert(self, alert_id: int) -> List[TradeRecord]:
        stmt = select(TradeRecord).where(TradeRecord.alert_id == alert_id).order_by(TradeRecord.created_at)
        return list(self.session.execute(stmt).scalars().all())


# ==========================================================
# DAILY P&L REPOSITORY
# ==========================================================
class DailyPnlRepository:
    def __init__(self, session: Session):
        self.session = session

    def increment(self, day: date, delta: Decimal) -> bool:
        """In-place increment. False when the row for `day` does not exist yet."""
        stmt = (
            update(DailyPnlRecord)
            .where(DailyPnlRecord.day == day)
            .values(realized=DailyPnlRecord.realized + delta, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return self.session.execute(stmt).rowcount == 1

    def create(self, day: date, realized: Decimal) -> None:
        self.session.add(DailyPnlRecord(day=day, realized=realized, updated_at=utcnow()))
        self.session.flush()

    def get(self, day: date) -> Decimal:
        stmt = select(DailyPnlRecord.realized).where(DailyPnlRecord.day == day)
        value = self.session.execute(stmt).scalar_one_or_none()
        return Decimal("0") if value is None else Decimal(str(value))
