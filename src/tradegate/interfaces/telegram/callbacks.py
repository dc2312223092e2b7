# src/tradegate/interfaces/telegram/callbacks.py
"""Inline-button decisions on alert cards."""

import logging

from telegram import Update
from telegram.ext import Application, CallbackQueryHandler, ContextTypes

from tradegate.application.services.pipeline_service import AlertPipeline
from tradegate.domain.entities import AlertStatus, Decision
from tradegate.domain.errors import StoreUnavailable
from .helpers import get_service
from .keyboards import CallbackAction, CallbackNamespace, parse_alert_callback

log = logging.getLogger(__name__)

_DECISIONS = {
    CallbackAction.CONFIRM: Decision.CONFIRM,
    CallbackAction.CANCEL: Decision.CANCEL,
}


async def alert_decision_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    parsed = parse_alert_callback(query.data)
    if parsed is None:
        await query.answer("Unknown action.")
        return
    action, alert_id = parsed
    decision = _DECISIONS[action]
    pipeline = get_service(context, "alert_pipeline", AlertPipeline)

    try:
        outcome = await pipeline.decide(alert_id, decision)
    except StoreUnavailable:
        log.error("Decision %s on alert %s failed: store unavailable", decision.value, alert_id)
        await query.answer("⚠️ Storage unavailable, please retry.", show_alert=True)
        return

    if outcome.accepted:
        await query.answer("✅ Confirmed, routing order..." if decision == Decision.CONFIRM else "❌ Cancelled")
    elif outcome.status is None:
        await query.answer("Unknown alert.", show_alert=True)
    elif outcome.status == AlertStatus.PENDING:
        await query.answer("Not ready yet, try again in a moment.")
    else:
        await query.answer(f"Already {outcome.status.value}.", show_alert=True)
        return

    # Routing may take several retries; other clicks are not held up by it.
    if outcome.accepted and decision == Decision.CONFIRM:
        pipeline.dispatch_decision(alert_id, outcome)


def register_callback_handlers(application: Application) -> None:
    application.add_handler(
        CallbackQueryHandler(alert_decision_handler, pattern=rf"^{CallbackNamespace.ALERT.value}:")
    )
