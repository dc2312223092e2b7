# src/tradegate/interfaces/telegram/errors.py
import logging

from telegram import Update
from telegram.error import TelegramError
from telegram.ext import Application, ContextTypes

log = logging.getLogger(__name__)


async def _error_handler(update: object, context: ContextTypes.DEFAULT_TYPE):
    log.error("Unhandled Telegram error", exc_info=context.error)
    if not isinstance(update, Update):
        return
    try:
        # An unanswered button press keeps spinning on the operator's side.
        if update.callback_query:
            await update.callback_query.answer("⚠️ Something went wrong. The alert state is unchanged.", show_alert=True)
        elif update.effective_chat:
            await context.bot.send_message(
                chat_id=update.effective_chat.id,
                text="⚠️ An unexpected error occurred. It has been logged.",
            )
    except TelegramError as e:
        log.warning(f"Could not report error for update {update.update_id}: {e}")


def register_error_handler(application: Application) -> None:
    application.add_error_handler(_error_handler)
