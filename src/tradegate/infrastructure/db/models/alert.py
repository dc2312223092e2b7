# src/tradegate/infrastructure/db/models/alert.py
"""
SQLAlchemy ORM models for alerts, the trades routed for them, and the daily
realized P&L counter read by the drawdown guard.
"""

from sqlalchemy import (
    Column, Integer, String, DateTime, Date, ForeignKey, Enum, Text, Numeric, func
)

from .base import Base, JSONType
from tradegate.domain.entities import AlertStatus, TradeStatus


class AlertRecord(Base):
    __tablename__ = "alerts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # The unique constraint is what makes admission atomic.
    fingerprint = Column(String(64), unique=True, nullable=False, index=True)

    symbol = Column(String(32), nullable=False, index=True)
    side = Column(String(8), nullable=False)
    timeframe = Column(String(16), nullable=False)

    status = Column(Enum(AlertStatus, name="alertstatus"), nullable=False, default=AlertStatus.PENDING, index=True)
    status_reason = Column(Text, nullable=True)

    payload = Column(JSONType, nullable=False)
    meta = Column(JSONType, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<AlertRecord(id={self.id}, fp={self.fingerprint[:12]}, status='{self.status.value}')>"


class TradeRecord(Base):
    __tablename__ = "trades"

    id = Column(String(32), primary_key=True)
    alert_id = Column(Integer, ForeignKey("alerts.id"), nullable=False, index=True)

    router = Column(String(32), nullable=False)
    order_id = Column(String(128), nullable=True)
    client_order_id = Column(String(64), nullable=True, index=True)

    symbol = Column(String(32), nullable=False)
    side = Column(String(8), nullable=False)
    entry = Column(Numeric(28, 10), nullable=False)
    stop = Column(Numeric(28, 10), nullable=False)
    targets = Column(JSONType, nullable=False)
    units = Column(Numeric(28, 10), nullable=False)

    status = Column(Enum(TradeStatus, name="tradestatus"), nullable=False)
    raw_response = Column(JSONType, nullable=True)
    error = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class DailyPnlRecord(Base):
    __tablename__ = "daily_pnl"

    day = Column(Date, primary_key=True)
    realized = Column(Numeric(20, 8), nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
