# src/tradegate/interfaces/telegram/commands.py

import logging

from telegram import Update
from telegram.ext import Application, CommandHandler, ContextTypes

from tradegate.application.services.pipeline_service import AlertPipeline
from tradegate.domain.errors import StoreUnavailable
from tradegate.domain.value_objects import to_decimal
from .auth import require_admin_chat
from .helpers import get_service
from .ui_texts import build_status_text

log = logging.getLogger(__name__)

HELP_TEXT = (
    "<b>TradeGate</b>\n"
    "Alert cards arrive here with ✅ Confirm / ❌ Cancel buttons.\n\n"
    "/status - mode, equity and today's realized P&amp;L\n"
    "/pnl &lt;delta&gt; - adjust today's realized P&amp;L (admin chat only)"
)


async def start_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await update.effective_message.reply_html(HELP_TEXT)


async def status_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    pipeline = get_service(context, "alert_pipeline", AlertPipeline)
    try:
        report = pipeline.status_report()
    except StoreUnavailable:
        await update.effective_message.reply_html("⚠️ Storage unavailable.")
        return
    await update.effective_message.reply_html(build_status_text(report))


@require_admin_chat
async def pnl_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if len(context.args or []) != 1:
        await update.effective_message.reply_html("Usage: <code>/pnl -125.50</code>")
        return
    try:
        delta = to_decimal(context.args[0])
    except ValueError:
        await update.effective_message.reply_html("⚠️ Delta must be a finite number.")
        return

    pipeline = get_service(context, "alert_pipeline", AlertPipeline)
    try:
        total = pipeline.adjust_pnl(delta)
    except StoreUnavailable:
        await update.effective_message.reply_html("⚠️ Storage unavailable, adjustment not applied.")
        return
    log.info(f"Daily P&L adjusted by {delta} from admin chat -> {total}")
    await update.effective_message.reply_html(
        f"✅ Daily realized P&amp;L adjusted by <code>{delta}</code>. New total: <b>{total}</b>"
    )


def register_commands(application: Application) -> None:
    application.add_handler(CommandHandler(["start", "help"], start_cmd))
    application.add_handler(CommandHandler("status", status_cmd))
    application.add_handler(CommandHandler("pnl", pnl_cmd))
