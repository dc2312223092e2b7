# src/tradegate/infrastructure/notify/telegram.py
"""
Outbound Telegram messaging: the alert card with its decision buttons, card
edits once a decision lands, and plain operator notifications.

Delivery failures are logged and reported as a None/False return; a dead chat
never takes the pipeline down with it.
"""

import logging
import asyncio
from typing import Optional, Union, Tuple, Any

from telegram import Bot, InlineKeyboardMarkup
from telegram.constants import ParseMode
from telegram.error import RetryAfter, TimedOut, NetworkError, TelegramError
from telegram.request import HTTPXRequest

from tradegate.domain.entities import Alert, AlertStatus, SizeInfo, Venue
from tradegate.interfaces.telegram.keyboards import alert_decision_keyboard
from tradegate.interfaces.telegram.ui_texts import build_alert_card_text, build_closed_card_text

log = logging.getLogger(__name__)

MessageRef = Tuple[int, int]


class TelegramNotifier:

    def __init__(
        self,
        bot_token: str,
        chat_id: Union[int, str],
        bot: Optional[Bot] = None,
    ):
        if not bot_token and bot is None:
            raise ValueError("Telegram bot token is required")
        self.chat_id = chat_id
        if bot is None:
            request = HTTPXRequest(
                connection_pool_size=20,
                read_timeout=10.0,
                write_timeout=10.0,
                connect_timeout=5.0,
            )
            bot = Bot(token=bot_token, request=request)
        self.bot = bot
        self.ptb_app = None

    def set_ptb_app(self, ptb_app: Any):
        """Once the Application exists, send through its (initialized) bot."""
        self.ptb_app = ptb_app
        if getattr(ptb_app, "bot", None) is not None:
            self.bot = ptb_app.bot

    async def _send_text(self, chat_id: Union[int, str], text: str,
                         keyboard: Optional[InlineKeyboardMarkup] = None,
                         retries: int = 3) -> Optional[MessageRef]:
        try:
            msg = await self.bot.send_message(
                chat_id=chat_id,
                text=text,
                reply_markup=keyboard,
                parse_mode=ParseMode.HTML,
                disable_web_page_preview=True,
            )
            return (msg.chat.id, msg.message_id)
        except RetryAfter as e:
            if retries <= 0:
                log.error(f"Flood limit persisted for {chat_id}, giving up")
                return None
            delay = e.retry_after
            if hasattr(delay, "total_seconds"):
                delay = delay.total_seconds()
            log.warning(f"Flood limit. Sleeping {delay}s")
            await asyncio.sleep(float(delay))
            return await self._send_text(chat_id, text, keyboard, retries - 1)
        except (TimedOut, NetworkError) as e:
            if retries > 0:
                await asyncio.sleep(1)
                return await self._send_text(chat_id, text, keyboard, retries - 1)
            log.error(f"Network failed for {chat_id}: {e}")
            return None
        except TelegramError as e:
            log.error(f"Send failed for {chat_id}: {e}")
            return None

    async def _edit_text(self, chat_id: Union[int, str], message_id: int,
                         text: str, keyboard: Optional[InlineKeyboardMarkup] = None) -> bool:
        try:
            await self.bot.edit_message_text(
                chat_id=chat_id,
                message_id=message_id,
                text=text,
                reply_markup=keyboard,
                parse_mode=ParseMode.HTML,
                disable_web_page_preview=True,
            )
            return True
        except TelegramError as e:
            if "message is not modified" in str(e).lower():
                return True
            log.warning(f"Edit failed {chat_id}/{message_id}: {e}")
            return False

    # --- Public API ---

    async def send_alert_card(self, alert: Alert, size: SizeInfo, venue: Venue) -> Optional[MessageRef]:
        text = build_alert_card_text(alert, size, venue)
        return await self._send_text(self.chat_id, text, alert_decision_keyboard(alert.id))

    async def close_card(self, alert: Alert, status: AlertStatus, reason: Optional[str] = None) -> bool:
        """Rewrites the alert card with its outcome and removes the buttons."""
        ref = alert.message_ref
        if not ref or ref[0] is None or ref[1] is None:
            return False
        return await self._edit_text(ref[0], ref[1], build_closed_card_text(alert, status, reason), None)

    async def send_text(self, text: str) -> Optional[MessageRef]:
        return await self._send_text(self.chat_id, text)
