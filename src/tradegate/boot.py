# src/tradegate/boot.py

import logging
from typing import Any, Dict, Optional

from telegram.ext import Application

from tradegate.config import settings as default_settings, Settings
from tradegate.application.services import (
    AlertPipeline,
    ConfirmationBroker,
    IdempotencyService,
    LedgerService,
    OrderRouter,
    RiskGate,
)
from tradegate.domain.entities import Venue
from tradegate.infrastructure.store import AlertStore, build_alert_store
from tradegate.infrastructure.execution import (
    AlpacaExec, BinanceCreds, BinanceExec, OandaExec, RetryPolicy, VenueClient,
)
from tradegate.infrastructure.notify.log_notifier import LogNotifier
from tradegate.infrastructure.notify.telegram import TelegramNotifier

log = logging.getLogger(__name__)


def build_venue_clients(settings: Settings) -> Dict[Venue, VenueClient]:
    """Live executors for every venue whose credentials are configured."""
    clients: Dict[Venue, VenueClient] = {}
    timeout = settings.ROUTER_TIMEOUT_SEC
    if settings.BINANCE_API_KEY and settings.BINANCE_API_SECRET:
        clients[Venue.CRYPTO] = BinanceExec(
            BinanceCreds(settings.BINANCE_API_KEY, settings.BINANCE_API_SECRET),
            futures=settings.BINANCE_FUTURES,
            timeout=timeout,
        )
    if settings.OANDA_API_KEY and settings.OANDA_ACCOUNT_ID:
        clients[Venue.FX] = OandaExec(
            settings.OANDA_API_KEY, settings.OANDA_ACCOUNT_ID, base_url=settings.OANDA_BASE_URL, timeout=timeout
        )
    if settings.ALPACA_API_KEY and settings.ALPACA_SECRET_KEY:
        clients[Venue.EQUITIES] = AlpacaExec(
            settings.ALPACA_API_KEY, settings.ALPACA_SECRET_KEY, base_url=settings.ALPACA_BASE_URL, timeout=timeout
        )
    for venue in (Venue.CRYPTO, Venue.FX, Venue.EQUITIES):
        if venue not in clients:
            log.warning("No credentials for %s venue; live orders there will fail.", venue.value)
    return clients


def build_services(
    ptb_app: Optional[Application] = None,
    *,
    settings: Optional[Settings] = None,
    store: Optional[AlertStore] = None,
    notifier: Any = None,
    venue_clients: Optional[Dict[Venue, VenueClient]] = None,
) -> Dict[str, Any]:
    """Build and wire all application services and dependencies."""
    settings = settings or default_settings
    log.info("Building application services (mode=%s, store=%s)...", settings.MODE, settings.STORE_BACKEND)
    services: Dict[str, Any] = {}

    try:
        if notifier is None:
            if settings.TELEGRAM_BOT_TOKEN and settings.TELEGRAM_CHAT_ID:
                notifier = TelegramNotifier(
                    settings.TELEGRAM_BOT_TOKEN,
                    settings.TELEGRAM_CHAT_ID,
                )
            else:
                log.warning("TELEGRAM_BOT_TOKEN/TELEGRAM_CHAT_ID not set; notifications go to the log only.")
                notifier = LogNotifier()
        if ptb_app and hasattr(notifier, "set_ptb_app"):
            notifier.set_ptb_app(ptb_app)
        services["notifier"] = notifier

        store = store or build_alert_store(settings)
        services["store"] = store

        idempotency = IdempotencyService(store=store)
        ledger = LedgerService(store=store)
        risk_gate = RiskGate(default_risk_pct=settings.DEFAULT_RISK_PCT)

        if settings.is_paper:
            clients = {}
        else:
            clients = venue_clients if venue_clients is not None else build_venue_clients(settings)
        router = OrderRouter(
            ledger,
            clients,
            paper=settings.is_paper,
            policy=RetryPolicy.from_settings(settings),
        )
        broker = ConfirmationBroker(idempotency, notifier, timeout_sec=settings.DECISION_TIMEOUT_SEC)

        pipeline = AlertPipeline(
            idempotency, risk_gate, broker, router, ledger, notifier,
            equity=settings.ACCOUNT_EQUITY,
            drawdown_limit=settings.DAILY_DRAWDOWN_LIMIT,
            mode="paper" if settings.is_paper else "live",
            stall_timeout_sec=settings.CONFIRM_STALL_SEC,
        )

        services["idempotency_service"] = idempotency
        services["ledger_service"] = ledger
        services["risk_gate"] = risk_gate
        services["order_router"] = router
        services["confirmation_broker"] = broker
        services["alert_pipeline"] = pipeline

        log.info("✅ All services built and wired successfully.")
        return services

    except Exception as e:
        log.critical(f"❌ Service building failed: {e}", exc_info=True)
        raise


def bootstrap_app(settings: Optional[Settings] = None) -> Optional[Application]:
    """Bootstraps the Telegram Application instance."""
    settings = settings or default_settings
    if not settings.TELEGRAM_BOT_TOKEN:
        log.error("TELEGRAM_BOT_TOKEN not set. Bot cannot start.")
        return None

    try:
        ptb_app = Application.builder().token(settings.TELEGRAM_BOT_TOKEN).build()
        log.info("✅ Telegram Application built successfully.")
        return ptb_app
    except Exception as e:
        log.critical(f"❌ Application bootstrap failed: {e}", exc_info=True)
        raise
