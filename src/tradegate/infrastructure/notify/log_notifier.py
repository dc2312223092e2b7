# src/tradegate/infrastructure/notify/log_notifier.py
import logging
from typing import Optional

from tradegate.domain.entities import Alert, AlertStatus, SizeInfo, Venue

log = logging.getLogger(__name__)


class LogNotifier:
    """
    Used when no Telegram bot is configured. Notifications go to the log; there
    is no decision surface, so alert cards cannot be delivered.
    """

    async def send_alert_card(self, alert: Alert, size: SizeInfo, venue: Venue) -> Optional[tuple]:
        log.warning("No Telegram bot configured; alert %s (%s) cannot be presented", alert.id, alert.symbol)
        return None

    async def close_card(self, alert: Alert, status: AlertStatus, reason: Optional[str] = None) -> bool:
        return False

    async def send_text(self, text: str) -> Optional[tuple]:
        log.info("notify: %s", text)
        return None
