# src/tradegate/application/services/risk_service.py

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Union

from tradegate.domain.entities import Alert, SizeInfo
from tradegate.domain.errors import RiskBlocked

DEGENERATE_STOP = "DEGENERATE_STOP"
DRAWDOWN_EXCEEDED = "DRAWDOWN_EXCEEDED"
INVALID_RISK = "INVALID_RISK"

_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class AccountState:
    """Snapshot taken right before an evaluation. Never cached between evaluations."""
    equity: Decimal
    daily_realized_pnl: Decimal
    drawdown_limit: Decimal  # fraction of equity, e.g. 0.05

    @property
    def drawdown_limit_usd(self) -> Decimal:
        return self.equity * self.drawdown_limit


@dataclass(frozen=True)
class Admit:
    size: SizeInfo
    admitted: bool = True


@dataclass(frozen=True)
class Block:
    reason: str
    detail: str = ""
    admitted: bool = False


RiskDecision = Union[Admit, Block]


@dataclass
class RiskGate:
    """
    Sizes an alert from account equity and a per-trade risk fraction, and
    refuses it when the stop is degenerate or today's realized loss has hit
    the drawdown limit.

    units = (equity × risk_pct / 100) / |entry − stop|

    Units are left unrounded; lot rounding (always down) belongs to the venue.
    """
    default_risk_pct: Decimal

    def _risk_pct(self, alert: Alert) -> Decimal:
        return alert.risk_pct if alert.risk_pct is not None else Decimal(self.default_risk_pct)

    def compute_size(self, alert: Alert, equity: Decimal) -> SizeInfo:
        risk_pct = self._risk_pct(alert)
        risk_amount = equity * risk_pct / _HUNDRED
        distance = alert.stop_distance
        if not distance.is_finite() or distance <= 0:
            return SizeInfo(units=Decimal("0"), risk_amount=risk_amount, stop_distance=Decimal("0"), risk_pct=risk_pct)
        return SizeInfo(
            units=risk_amount / distance,
            risk_amount=risk_amount,
            stop_distance=distance,
            risk_pct=risk_pct,
        )

    def size_or_raise(self, alert: Alert, account: AccountState) -> SizeInfo:
        """Checks run in order: stop distance, drawdown, risk fraction. Raises RiskBlocked."""
        distance = alert.stop_distance
        if not distance.is_finite() or distance <= 0:
            raise RiskBlocked(DEGENERATE_STOP, f"entry {alert.entry} equals stop {alert.stop}")

        loss_today = -account.daily_realized_pnl
        if loss_today >= account.drawdown_limit_usd:
            raise RiskBlocked(DRAWDOWN_EXCEEDED, f"daily loss {loss_today} >= limit {account.drawdown_limit_usd}")

        risk_pct = self._risk_pct(alert)
        if not risk_pct.is_finite() or risk_pct <= 0 or risk_pct > _HUNDRED:
            raise RiskBlocked(INVALID_RISK, f"risk_pct {risk_pct} outside (0, 100]")

        size = self.compute_size(alert, account.equity)
        if size.is_degenerate:
            raise RiskBlocked(DEGENERATE_STOP, "computed size is zero")
        return size

    def check_and_size(self, alert: Alert, account: AccountState) -> RiskDecision:
        try:
            return Admit(self.size_or_raise(alert, account))
        except RiskBlocked as e:
            return Block(e.reason, e.detail)
