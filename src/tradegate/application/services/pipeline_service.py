# src/tradegate/application/services/pipeline_service.py
"""
AlertPipeline owns the control flow of an alert:

    admit -> risk check (1) -> present -> decision -> risk check (2)
          -> route -> record -> notify

Inbound surfaces (webhook, Telegram callbacks) call the pipeline and never a
stage directly. Each stage advances the alert with a compare-and-set; the
caller that wins the move into a terminal status is the one that notifies.
"""

from __future__ import annotations
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional, Set

from tradegate.domain.entities import Alert, AlertStatus, Decision, Trade, TradeStatus
from tradegate.domain.errors import DuplicateAlert, RouterTerminalError, ValidationError
from tradegate.domain.fingerprint import compute_fingerprint
from tradegate.domain.value_objects import Symbol, Side, Price, to_decimal
from tradegate.domain.venues import map_symbol_to_venue
from tradegate.interfaces.api.metrics import ALERTS, TERMINALS
from tradegate.interfaces.telegram.ui_texts import (
    build_outcome_text,
    build_trade_executed_text,
    build_unresolved_outcome_text,
)
from .confirmation_service import ConfirmationBroker, DecisionOutcome
from .idempotency_service import Admission, IdempotencyService
from .ledger_service import LedgerService, utc_today
from .risk_service import AccountState, Block, RiskGate
from .router_service import OrderRouter, TradeResult

log = logging.getLogger(__name__)

STALLED_AFTER_CONFIRM = "STALLED_AFTER_CONFIRM"


def build_alert(
    *,
    symbol: str,
    timeframe: str,
    side: str,
    entry: Any,
    stop: Any,
    targets: Optional[Iterable[Any]] = None,
    confidence: Optional[float] = None,
    rationale: Optional[str] = None,
    risk_pct: Optional[Any] = None,
) -> Alert:
    """Normalizes raw alert fields into an Alert with its fingerprint. Raises ValidationError."""
    try:
        tf = str(timeframe).strip().lower()
        if not tf:
            raise ValueError("timeframe must not be empty")
        alert = Alert(
            symbol=Symbol(symbol),
            timeframe=tf,
            side=Side(side),
            entry=Price.of(entry),
            stop=Price.of(stop),
            targets=[Price.of(t) for t in (targets or [])],
            fingerprint="",
            confidence=None if confidence is None else float(to_decimal(confidence)),
            rationale=(rationale or None),
            risk_pct=None if risk_pct is None else to_decimal(risk_pct),
        )
    except (ValueError, TypeError) as e:
        raise ValidationError(str(e)) from e
    if alert.risk_pct is not None and not (Decimal("0") < alert.risk_pct <= Decimal("100")):
        raise ValidationError("risk_pct must be in (0, 100]")
    alert.fingerprint = compute_fingerprint(alert)
    return alert


class AlertPipeline:
    def __init__(
        self,
        idempotency: IdempotencyService,
        risk: RiskGate,
        broker: ConfirmationBroker,
        router: OrderRouter,
        ledger: LedgerService,
        notifier: Any,
        *,
        equity: Decimal,
        drawdown_limit: Decimal,
        mode: str = "paper",
        stall_timeout_sec: float = 600.0,
    ):
        self.idempotency = idempotency
        self.risk = risk
        self.broker = broker
        self.router = router
        self.ledger = ledger
        self.notifier = notifier
        self.equity = Decimal(equity)
        self.drawdown_limit = Decimal(drawdown_limit)
        self.mode = mode
        self.stall_timeout = timedelta(seconds=stall_timeout_sec)
        # Alerts whose routing is running in this process.
        self._inflight: Set[int] = set()
        self._background: Set[asyncio.Task] = set()

    # --- account ---

    def account_state(self) -> AccountState:
        return AccountState(
            equity=self.equity,
            daily_realized_pnl=self.ledger.get_daily_realized_pnl(utc_today()),
            drawdown_limit=self.drawdown_limit,
        )

    def status_report(self) -> Dict[str, Any]:
        state = self.account_state()
        return {
            "mode": self.mode,
            "daily_pnl": str(state.daily_realized_pnl),
            "drawdown_limit_fraction": str(state.drawdown_limit),
            "drawdown_limit_usd": str(state.drawdown_limit_usd),
            "equity": str(state.equity),
            "ts": datetime.now(timezone.utc).isoformat(),
        }

    def adjust_pnl(self, delta: Decimal) -> Decimal:
        return self.ledger.adjust_daily_realized_pnl(utc_today(), delta)

    # --- admission ---

    def admit(self, alert: Alert) -> Admission:
        """
        Persists the alert if its fingerprint is new. Raises DuplicateAlert for a
        fingerprint seen before; the existing record is left untouched.
        """
        admission = self.idempotency.admit(alert.fingerprint, alert.to_payload())
        alert.id = admission.alert_id
        ALERTS.labels(outcome="admitted" if admission.is_new else "duplicate").inc()
        if not admission.is_new:
            raise DuplicateAlert(alert.fingerprint, admission.alert_id)
        return admission

    async def submit(self, alert: Alert) -> Admission:
        """Admission plus pre-trade processing in one await. Used outside the webhook."""
        try:
            admission = self.admit(alert)
        except DuplicateAlert as e:
            return Admission(is_new=False, alert_id=e.alert_id)
        await self.process_admitted(admission.alert_id)
        return admission

    async def process_admitted(self, alert_id: int) -> AlertStatus:
        """Risk check (1) and presentation of a freshly admitted alert."""
        try:
            alert = self.idempotency.get(alert_id)
            if alert is None:
                log.error("Admitted alert %s not found", alert_id)
                return AlertStatus.ERROR
            if alert.status != AlertStatus.PENDING:
                return alert.status

            decision = self.risk.check_and_size(alert, self.account_state())
            if isinstance(decision, Block):
                log.warning("Alert %s blocked before presentation: %s %s", alert_id, decision.reason, decision.detail)
                return await self._finish(alert, [AlertStatus.PENDING], AlertStatus.BLOCKED, decision.reason)

            venue = map_symbol_to_venue(alert.symbol)
            if await self.broker.present(alert, decision.size, venue):
                return AlertStatus.AWAITING_DECISION
            current = self.idempotency.get(alert_id)
            if current is not None and current.status == AlertStatus.PENDING:
                return await self._finish(alert, [AlertStatus.PENDING], AlertStatus.ERROR, "PRESENTATION_FAILED")
            return current.status if current else AlertStatus.ERROR
        except Exception:
            log.exception("Processing of alert %s failed", alert_id)
            return await self._fail_safely(alert_id, [AlertStatus.PENDING], "INTERNAL_ERROR")

    # --- decisions ---

    async def decide(self, alert_id: int, decision: Decision) -> DecisionOutcome:
        return await self.broker.decide(alert_id, decision)

    async def handle_decision(self, alert_id: int, decision: Decision) -> DecisionOutcome:
        outcome = await self.decide(alert_id, decision)
        await self.after_decision(alert_id, outcome)
        return outcome

    async def after_decision(self, alert_id: int, outcome: DecisionOutcome) -> AlertStatus | None:
        """Routes an accepted confirmation. Every other outcome is already settled by the broker."""
        if not (outcome.accepted and outcome.status == AlertStatus.CONFIRMED):
            return outcome.status
        if outcome.alert is None:
            log.error("Confirmed alert %s could not be read back; moving it to ERROR", alert_id)
            return await self._fail_safely(alert_id, [AlertStatus.CONFIRMED], "INTERNAL_ERROR")
        return await self.on_confirmed(outcome.alert)

    def dispatch_decision(self, alert_id: int, outcome: DecisionOutcome) -> asyncio.Task:
        """Runs after_decision in the background so the caller is not held for the routing retries."""
        task = asyncio.create_task(self.after_decision(alert_id, outcome))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def on_confirmed(self, alert: Alert) -> AlertStatus:
        """Risk check (2) with fresh account state, then a single routing call."""
        self._inflight.add(alert.id)
        try:
            decision = self.risk.check_and_size(alert, self.account_state())
            if isinstance(decision, Block):
                log.warning("Alert %s blocked after confirmation: %s %s", alert.id, decision.reason, decision.detail)
                return await self._finish(alert, [AlertStatus.CONFIRMED], AlertStatus.BLOCKED, decision.reason)

            try:
                result: TradeResult = await self.router.execute(alert, decision.size)
            except RouterTerminalError as e:
                log.warning("Alert %s cannot be routed: %s", alert.id, e)
                return await self._finish(alert, [AlertStatus.CONFIRMED], AlertStatus.ERROR, str(e))

            if not result.ok:
                return await self._finish(alert, [AlertStatus.CONFIRMED], AlertStatus.ERROR, result.error or "ROUTING_FAILED")

            return await self._executed(alert, result.trade)
        except Exception:
            log.exception("Execution of alert %s failed", alert.id)
            return await self._fail_safely(alert.id, [AlertStatus.CONFIRMED], "INTERNAL_ERROR")
        finally:
            self._inflight.discard(alert.id)

    # --- recovery ---

    async def recover_stalled(self, now: Optional[datetime] = None) -> int:
        """
        Settles CONFIRMED alerts that nobody is routing any more, e.g. after a
        crash between the confirmation and the routing call. An alert with a
        placed trade on the ledger is marked EXECUTED; anything else goes to ERROR.
        """
        now = now or datetime.now(timezone.utc)
        settled = 0
        for alert in self.idempotency.list_by_status(AlertStatus.CONFIRMED):
            if alert.id in self._inflight or alert.updated_at + self.stall_timeout > now:
                continue
            placed = [t for t in self.ledger.list_trades(alert.id) if t.status != TradeStatus.FAILED]
            if placed:
                status = await self._executed(alert, placed[-1])
            else:
                log.warning("Alert %s stalled in CONFIRMED with no placed trade", alert.id)
                status = await self._finish(alert, [AlertStatus.CONFIRMED], AlertStatus.ERROR, STALLED_AFTER_CONFIRM)
            if status != AlertStatus.CONFIRMED:
                settled += 1
        if settled:
            log.info("Recovery sweep settled %d confirmed alert(s)", settled)
        return settled

    async def sweep(self, now: Optional[datetime] = None) -> int:
        """Periodic housekeeping: decision expiry, then stalled confirmations."""
        return await self.broker.sweep_expired(now) + await self.recover_stalled(now)

    async def shutdown(self) -> None:
        tasks = list(self._background)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # --- terminal transitions ---

    async def _executed(self, alert: Alert, trade: Trade) -> AlertStatus:
        self.idempotency.record_meta(alert.id, trade_id=trade.id)
        return await self._finish(
            alert, [AlertStatus.CONFIRMED], AlertStatus.EXECUTED, trade.status.value,
            text=build_trade_executed_text(trade),
        )

    async def _finish(
        self,
        alert: Alert,
        expected: Iterable[AlertStatus],
        status: AlertStatus,
        reason: Optional[str],
        text: Optional[str] = None,
    ) -> AlertStatus:
        result = self.idempotency.transition(alert.id, expected, status, reason)
        if not result.changed:
            return result.status or status
        alert.status = status
        alert.status_reason = reason
        TERMINALS.labels(status=status.value).inc()
        await self.notifier.send_text(text or build_outcome_text(alert, status, reason))
        await self.notifier.close_card(alert, status, reason)
        return status

    async def _fail_safely(self, alert_id: int, expected: Iterable[AlertStatus], reason: str) -> AlertStatus:
        """Moves the alert to ERROR without needing to read it first, then notifies once."""
        try:
            result = self.idempotency.transition(alert_id, expected, AlertStatus.ERROR, reason)
        except Exception:
            log.exception("Could not move alert %s to ERROR", alert_id)
            return AlertStatus.ERROR
        if not result.changed:
            return result.status or AlertStatus.ERROR
        TERMINALS.labels(status=AlertStatus.ERROR.value).inc()
        try:
            alert = self.idempotency.get(alert_id)
        except Exception:
            log.exception("Could not read alert %s after moving it to ERROR", alert_id)
            alert = None
        try:
            if alert is None:
                await self.notifier.send_text(build_unresolved_outcome_text(alert_id, AlertStatus.ERROR, reason))
            else:
                await self.notifier.send_text(build_outcome_text(alert, AlertStatus.ERROR, reason))
                await self.notifier.close_card(alert, AlertStatus.ERROR, reason)
        except Exception:
            log.exception("Could not announce ERROR for alert %s", alert_id)
        return AlertStatus.ERROR
