# src/tradegate/application/services/idempotency_service.py

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from tradegate.domain.entities import Alert, AlertStatus
from tradegate.infrastructure.store import AlertStore, TransitionResult

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Admission:
    is_new: bool
    alert_id: int


@dataclass
class IdempotencyService:
    """
    Front door of the pipeline. Admission and every status change go through
    here so that the store's atomic primitives are the only arbiter of who
    acts on an alert.
    """
    store: AlertStore

    def admit(self, fingerprint: str, payload: Dict[str, Any]) -> Admission:
        is_new, alert_id = self.store.insert_if_absent(fingerprint, payload)
        if is_new:
            log.info("Admitted alert id=%s fp=%s", alert_id, fingerprint[:12])
        else:
            log.warning("Duplicate alert fp=%s (existing id=%s)", fingerprint[:12], alert_id)
        return Admission(is_new=is_new, alert_id=alert_id)

    def get(self, alert_id: int) -> Optional[Alert]:
        return self.store.get(alert_id)

    def transition(
        self,
        alert_id: int,
        expected: Iterable[AlertStatus],
        new: AlertStatus,
        reason: Optional[str] = None,
    ) -> TransitionResult:
        result = self.store.update_status(alert_id, list(expected), new, reason)
        if result.changed:
            log.info("Alert %s -> %s%s", alert_id, new.value, f" ({reason})" if reason else "")
        else:
            log.debug("Alert %s transition to %s lost; current=%s", alert_id, new.value,
                      result.status.value if result.status else None)
        return result

    def record_meta(self, alert_id: int, **patch: Any) -> None:
        self.store.update_meta(alert_id, patch)

    def list_by_status(self, status: AlertStatus) -> List[Alert]:
        return self.store.list_by_status(status)
