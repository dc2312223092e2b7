# src/tradegate/application/services/confirmation_service.py
"""
Operator confirmation of admitted alerts.

The card is sent first, then the alert moves PENDING -> AWAITING_DECISION.
Decisions and expiry race through the same compare-and-set out of
AWAITING_DECISION, so whichever lands first settles the alert and every later
attempt is told what it was settled as.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Optional

from tradegate.domain.entities import Alert, AlertStatus, Decision, SizeInfo, Venue, utcnow
from tradegate.domain.errors import DecisionExpired
from tradegate.interfaces.api.metrics import DECISIONS, TERMINALS
from tradegate.interfaces.telegram.ui_texts import build_outcome_text, build_unresolved_outcome_text
from .idempotency_service import IdempotencyService

log = logging.getLogger(__name__)

DECISION_TIMEOUT = "DECISION_TIMEOUT"


@dataclass(frozen=True)
class DecisionOutcome:
    accepted: bool
    status: Optional[AlertStatus]
    alert: Optional[Alert] = None

    @property
    def already_decided(self) -> bool:
        return not self.accepted and self.status is not None and self.status != AlertStatus.PENDING


class ConfirmationBroker:
    def __init__(self, idempotency: IdempotencyService, notifier: Any, timeout_sec: float):
        self.idempotency = idempotency
        self.notifier = notifier
        self.timeout = timedelta(seconds=timeout_sec)
        self._timers: Dict[int, asyncio.Task] = {}
        self._sweeper: Optional[asyncio.Task] = None

    # --- presentation ---

    async def present(self, alert: Alert, size: SizeInfo, venue: Venue) -> bool:
        """Sends the decision card and starts the clock. False if the card could not be delivered."""
        ref = await self.notifier.send_alert_card(alert, size, venue)
        if not ref:
            log.error("Could not deliver decision card for alert %s", alert.id)
            return False

        meta = {
            "message": {"chat_id": ref[0], "message_id": ref[1]},
            "presented_at": utcnow().isoformat(),
            "venue": venue.value,
            "size": size.as_dict(),
        }
        # Stored before the transition so a click racing the CAS can find the card.
        self.idempotency.record_meta(alert.id, **meta)
        alert.meta.update(meta)

        result = self.idempotency.transition(alert.id, [AlertStatus.PENDING], AlertStatus.AWAITING_DECISION)
        if not result.changed:
            log.warning("Alert %s left PENDING before presentation (now %s)", alert.id,
                        result.status.value if result.status else None)
            return False
        alert.status = AlertStatus.AWAITING_DECISION
        self._arm_timer(alert.id, self.timeout.total_seconds())
        return True

    # --- decisions ---

    async def decide(self, alert_id: int, decision: Decision) -> DecisionOutcome:
        if decision == Decision.EXPIRE:
            expired = await self.expire(alert_id)
            current = AlertStatus.EXPIRED if expired else self._current_status(alert_id)
            return DecisionOutcome(expired, current, None)

        try:
            self._ensure_open(alert_id)
        except DecisionExpired as e:
            log.info("Decision %s on alert %s refused: %s", decision.value, alert_id, e)
            await self.expire(alert_id)
            return DecisionOutcome(False, self._current_status(alert_id), None)

        new = AlertStatus.CONFIRMED if decision == Decision.CONFIRM else AlertStatus.CANCELLED
        result = self.idempotency.transition(
            alert_id, [AlertStatus.AWAITING_DECISION], new, reason=f"operator {decision.value}"
        )
        if not result.changed:
            log.info("Decision %s on alert %s ignored; already %s", decision.value, alert_id,
                     result.status.value if result.status else "missing")
            return DecisionOutcome(False, result.status, None)

        self._cancel_timer(alert_id)
        DECISIONS.labels(decision=decision.value).inc()
        # The decision is settled from here on; later failures are logged, not raised.
        alert = self._read_settled(alert_id)
        if new == AlertStatus.CANCELLED:
            TERMINALS.labels(status=new.value).inc()
            await self._announce(alert_id, alert, new, "operator cancelled")
        elif alert is not None:
            try:
                await self.notifier.close_card(alert, new)
            except Exception:
                log.exception("Could not close card of confirmed alert %s", alert_id)
        return DecisionOutcome(True, new, alert)

    async def expire(self, alert_id: int) -> bool:
        result = self.idempotency.transition(
            alert_id, [AlertStatus.AWAITING_DECISION], AlertStatus.EXPIRED, reason=DECISION_TIMEOUT
        )
        if not result.changed:
            return False
        self._cancel_timer(alert_id)
        TERMINALS.labels(status=AlertStatus.EXPIRED.value).inc()
        await self._announce(alert_id, self._read_settled(alert_id), AlertStatus.EXPIRED, DECISION_TIMEOUT)
        return True

    async def sweep_expired(self, now: Optional[datetime] = None) -> int:
        """Expires overdue alerts and re-arms timers lost across a restart."""
        now = now or utcnow()
        expired = 0
        for alert in self.idempotency.list_by_status(AlertStatus.AWAITING_DECISION):
            deadline = self._presented_at(alert) + self.timeout
            if deadline <= now:
                if await self.expire(alert.id):
                    expired += 1
            elif alert.id not in self._timers:
                self._arm_timer(alert.id, (deadline - now).total_seconds())
        if expired:
            log.info("Expiry sweep expired %d alert(s)", expired)
        return expired

    # --- helpers ---

    def _ensure_open(self, alert_id: int) -> None:
        """Raises DecisionExpired for an alert still awaiting a decision past its deadline."""
        alert = self.idempotency.get(alert_id)
        if alert is None or alert.status != AlertStatus.AWAITING_DECISION:
            return
        deadline = self._presented_at(alert) + self.timeout
        if deadline <= utcnow():
            raise DecisionExpired(f"decision window closed at {deadline.isoformat()}")

    def _read_settled(self, alert_id: int) -> Optional[Alert]:
        try:
            return self.idempotency.get(alert_id)
        except Exception:
            log.exception("Could not read alert %s after settling it", alert_id)
            return None

    async def _announce(self, alert_id: int, alert: Optional[Alert], status: AlertStatus, reason: Optional[str]) -> None:
        try:
            if alert is None:
                await self.notifier.send_text(build_unresolved_outcome_text(alert_id, status, reason))
                return
            await self.notifier.send_text(build_outcome_text(alert, status, reason))
            await self.notifier.close_card(alert, status, reason)
        except Exception:
            log.exception("Could not announce %s for alert %s", status.value, alert_id)

    def _current_status(self, alert_id: int) -> Optional[AlertStatus]:
        alert = self.idempotency.get(alert_id)
        return alert.status if alert else None

    @staticmethod
    def _presented_at(alert: Alert) -> datetime:
        raw = alert.meta.get("presented_at")
        if raw:
            return datetime.fromisoformat(raw)
        return alert.updated_at

    def _arm_timer(self, alert_id: int, delay: float) -> None:
        self._cancel_timer(alert_id)
        self._timers[alert_id] = asyncio.create_task(self._expire_later(alert_id, delay))

    def _cancel_timer(self, alert_id: int) -> None:
        task = self._timers.pop(alert_id, None)
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def _expire_later(self, alert_id: int, delay: float) -> None:
        try:
            await asyncio.sleep(max(0.0, delay))
            await self.expire(alert_id)
        except asyncio.CancelledError:
            raise
        except Exception:
            log.exception("Expiry timer failed for alert %s", alert_id)
        finally:
            if self._timers.get(alert_id) is asyncio.current_task():
                self._timers.pop(alert_id, None)

    async def _sweep_loop(self, interval: float, sweep: Callable[[], Awaitable[Any]]) -> None:
        while True:
            try:
                await sweep()
            except asyncio.CancelledError:
                raise
            except Exception:
                log.exception("Expiry sweep failed")
            await asyncio.sleep(interval)

    def start(self, sweep_interval: float, sweep: Optional[Callable[[], Awaitable[Any]]] = None) -> None:
        """Runs `sweep` (default: sweep_expired) every `sweep_interval` seconds until shutdown."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop(sweep_interval, sweep or self.sweep_expired))

    async def shutdown(self) -> None:
        tasks = list(self._timers.values())
        if self._sweeper is not None:
            tasks.append(self._sweeper)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._timers.clear()
        self._sweeper = None
