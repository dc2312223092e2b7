# tests/conftest.py
"""
Fixtures and test setup for the Pytest suite.
"""

import os
from decimal import Decimal
from unittest.mock import MagicMock, AsyncMock

import pytest
import pytest_asyncio

# Set test environment variables BEFORE any application code is imported.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["STORE_BACKEND"] = "sql"
os.environ["MODE"] = "paper"
os.environ["TV_WEBHOOK_SECRET"] = "test_webhook_secret"
os.environ["API_KEY"] = "test_api_key"
os.environ["TELEGRAM_ADMIN_CHAT_ID"] = "999"
os.environ["ENV"] = "test"

from tradegate.application.services import (
    AlertPipeline,
    ConfirmationBroker,
    IdempotencyService,
    LedgerService,
    OrderRouter,
    RiskGate,
    build_alert,
)
from tradegate.infrastructure.db.base import make_engine, make_session_factory
from tradegate.infrastructure.db.sql_store import SqlAlchemyAlertStore
from tradegate.infrastructure.db.uow import create_tables

EQUITY = Decimal("100000")
DRAWDOWN_LIMIT = Decimal("0.05")


async def _no_sleep(_delay):
    return None


@pytest.fixture(scope="function")
def store():
    """A fresh in-memory SQL store per test."""
    engine = make_engine("sqlite://")
    create_tables(engine)
    sql_store = SqlAlchemyAlertStore(make_session_factory(engine))
    yield sql_store
    engine.dispose()


@pytest.fixture
def notifier() -> MagicMock:
    mock = MagicMock()
    mock.send_alert_card = AsyncMock(return_value=(-100123, 42))
    mock.close_card = AsyncMock(return_value=True)
    mock.send_text = AsyncMock(return_value=(-100123, 43))
    return mock


@pytest.fixture
def make_alert():
    """Factory for normalized alerts; any field can be overridden."""
    def _make(**overrides):
        fields = dict(
            symbol="BTCUSDT",
            timeframe="15m",
            side="LONG",
            entry="100",
            stop="95",
            targets=["110", "120"],
        )
        fields.update(overrides)
        return build_alert(**fields)
    return _make


@pytest.fixture
def idempotency(store) -> IdempotencyService:
    return IdempotencyService(store=store)


@pytest.fixture
def ledger(store) -> LedgerService:
    return LedgerService(store=store)


@pytest.fixture
def router(ledger) -> OrderRouter:
    return OrderRouter(ledger, paper=True, sleep=_no_sleep)


@pytest_asyncio.fixture
async def broker(idempotency, notifier):
    broker = ConfirmationBroker(idempotency, notifier, timeout_sec=900)
    yield broker
    await broker.shutdown()


@pytest.fixture
def pipeline(idempotency, broker, router, ledger, notifier) -> AlertPipeline:
    return AlertPipeline(
        idempotency,
        RiskGate(default_risk_pct=Decimal("3")),
        broker,
        router,
        ledger,
        notifier,
        equity=EQUITY,
        drawdown_limit=DRAWDOWN_LIMIT,
        mode="paper",
    )
