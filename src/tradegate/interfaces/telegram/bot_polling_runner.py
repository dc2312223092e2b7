# src/tradegate/interfaces/telegram/bot_polling_runner.py
"""Runs the decision bot with long polling for local development (no HTTP server)."""

import asyncio
import logging
from dotenv import load_dotenv

load_dotenv()

from tradegate.boot import bootstrap_app, build_services
from tradegate.config import settings
from tradegate.infrastructure.db.uow import create_tables
from tradegate.interfaces.telegram.handlers import register_all_handlers
from tradegate.logging_conf import setup_logging

log = logging.getLogger(__name__)


async def main():
    log.info("Starting bot in polling mode...")
    ptb_app = bootstrap_app()
    if not ptb_app:
        log.critical("Failed to bootstrap the application. Exiting.")
        return

    if settings.STORE_BACKEND.strip().lower() == "sql":
        create_tables()

    await ptb_app.initialize()
    services = build_services(ptb_app=ptb_app)
    ptb_app.bot_data["services"] = services
    register_all_handlers(ptb_app)

    broker = services["confirmation_broker"]
    pipeline = services["alert_pipeline"]
    try:
        await ptb_app.start()
        await ptb_app.updater.start_polling(allowed_updates=["message", "callback_query"])
        await pipeline.sweep()
        broker.start(settings.EXPIRY_SWEEP_INTERVAL_SEC, pipeline.sweep)
        await asyncio.Event().wait()
    finally:
        await broker.shutdown()
        await pipeline.shutdown()
        await services["order_router"].aclose()
        if ptb_app.updater and ptb_app.updater.running:
            await ptb_app.updater.stop()
        if ptb_app.running:
            await ptb_app.stop()
        await ptb_app.shutdown()
        services["store"].close()


if __name__ == "__main__":
    setup_logging()
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        log.info("Bot stopped manually.")
