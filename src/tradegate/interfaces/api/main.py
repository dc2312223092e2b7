# src/tradegate/interfaces/api/main.py
import logging

from fastapi import FastAPI, Request
from telegram import BotCommand, Update

from tradegate.config import settings
from tradegate.logging_conf import setup_logging
from tradegate.boot import bootstrap_app, build_services
from tradegate.infrastructure.db.uow import create_tables
from tradegate.interfaces.telegram.handlers import register_all_handlers
from tradegate.interfaces.api.metrics import router as metrics_router
from tradegate.interfaces.api.routers.status import router as status_router
from tradegate.interfaces.webhook.tradingview import router as tradingview_router

setup_logging()
log = logging.getLogger(__name__)

app = FastAPI(title="TradeGate API", version="1.0.0")
app.state.ptb_app = None
app.state.services = None

app.include_router(tradingview_router)
app.include_router(status_router)
if settings.METRICS_ENABLED:
    app.include_router(metrics_router)


@app.on_event("startup")
async def on_startup():
    log.info("🚀 Application startup sequence initiated...")
    if settings.STORE_BACKEND.strip().lower() == "sql":
        create_tables()

    ptb_app = bootstrap_app()
    if ptb_app:
        await ptb_app.initialize()
    app.state.ptb_app = ptb_app

    services = build_services(ptb_app=ptb_app)
    app.state.services = services

    if ptb_app:
        ptb_app.bot_data["services"] = services
        register_all_handlers(ptb_app)
        await ptb_app.bot.set_my_commands([
            BotCommand("status", "📊 Mode, equity and daily P&L"),
            BotCommand("pnl", "✏️ Adjust today's realized P&L (admin)"),
            BotCommand("help", "ℹ️ Help"),
        ])
        if settings.TELEGRAM_WEBHOOK_URL:
            await ptb_app.bot.set_webhook(url=settings.TELEGRAM_WEBHOOK_URL, allowed_updates=Update.ALL_TYPES)
        await ptb_app.start()

    # Settle anything that timed out or stalled while the process was down, then keep sweeping.
    pipeline = services["alert_pipeline"]
    await pipeline.sweep()
    services["confirmation_broker"].start(settings.EXPIRY_SWEEP_INTERVAL_SEC, pipeline.sweep)
    log.info("🚀 Application startup complete (mode=%s).", "paper" if settings.is_paper else "live")


@app.on_event("shutdown")
async def on_shutdown():
    services = app.state.services or {}
    broker = services.get("confirmation_broker")
    if broker:
        await broker.shutdown()
    pipeline = services.get("alert_pipeline")
    if pipeline:
        await pipeline.shutdown()
    router = services.get("order_router")
    if router:
        await router.aclose()
    if app.state.ptb_app:
        await app.state.ptb_app.stop()
        await app.state.ptb_app.shutdown()
    store = services.get("store")
    if store:
        store.close()


@app.post("/webhook/telegram")
async def telegram_webhook(request: Request):
    ptb_app = request.app.state.ptb_app
    if ptb_app:
        try:
            data = await request.json()
            update = Update.de_json(data, ptb_app.bot)
            await ptb_app.process_update(update)
        except Exception:
            log.exception("Error processing update")
    return {"status": "ok"}


@app.get("/")
def root():
    return {"message": "TradeGate API Running"}
