# src/tradegate/interfaces/telegram/auth.py

import logging
from functools import wraps
from typing import Callable

from telegram import Update
from telegram.ext import ContextTypes

from tradegate.config import settings

log = logging.getLogger(__name__)


def is_admin_chat(update: Update) -> bool:
    admin = settings.TELEGRAM_ADMIN_CHAT_ID
    chat = update.effective_chat
    return bool(admin) and chat is not None and str(chat.id) == str(admin).strip()


def require_admin_chat(func: Callable) -> Callable:
    """Restricts a command to TELEGRAM_ADMIN_CHAT_ID. Unset admin chat means nobody."""
    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE, *args, **kwargs):
        if not is_admin_chat(update):
            chat_id = update.effective_chat.id if update.effective_chat else "Unknown"
            log.warning(f"Blocked admin command from chat {chat_id}.")
            if update.effective_message:
                await update.effective_message.reply_html("🚫 <b>Access Denied</b>")
            return
        return await func(update, context, *args, **kwargs)
    return wrapper
