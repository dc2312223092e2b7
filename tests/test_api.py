import json
import pytest
from decimal import Decimal
from unittest.mock import MagicMock, AsyncMock

from fastapi import FastAPI
from fastapi.testclient import TestClient

from tradegate.application.services.idempotency_service import Admission
from tradegate.application.services.pipeline_service import AlertPipeline
from tradegate.domain.errors import AuthenticationError, DuplicateAlert, StoreUnavailable
from tradegate.interfaces.api.routers.status import router as status_router
from tradegate.interfaces.webhook.tradingview import router as tradingview_router, authenticate, sign_body

SECRET = "test_webhook_secret"
HEADERS = {"X-API-Key": "test_api_key"}

ALERT = {
    "symbol": "BINANCE:BTCUSDT",
    "tf": "15",
    "side": "long",
    "entry": 65000,
    "sl": 64000,
    "tp": [66000, 67000],
    "conviction": 0.8,
    "why": "range breakout",
}


@pytest.fixture
def mock_pipeline() -> MagicMock:
    pipeline = MagicMock(spec=AlertPipeline)
    pipeline.admit.return_value = Admission(is_new=True, alert_id=1)
    pipeline.process_admitted = AsyncMock()
    return pipeline


@pytest.fixture
def client(mock_pipeline) -> TestClient:
    app = FastAPI()
    app.include_router(tradingview_router)
    app.include_router(status_router)
    app.state.services = {"alert_pipeline": mock_pipeline}
    return TestClient(app)


def _post(client, payload, secret=SECRET, header="X-TV-Signature"):
    body = json.dumps(payload).encode() if not isinstance(payload, bytes) else payload
    headers = {"Content-Type": "application/json"}
    if secret is not None:
        headers[header] = sign_body(secret, body)
    return client.post("/webhook/tradingview", content=body, headers=headers)


# --- signature ---

def test_authenticate_fails_closed():
    body = b'{"a":1}'
    authenticate(SECRET, body, {"X-TV-Signature": sign_body(SECRET, body)})
    with pytest.raises(AuthenticationError, match="not configured"):
        authenticate(None, body, {"X-TV-Signature": sign_body(SECRET, body)})
    with pytest.raises(AuthenticationError, match="missing"):
        authenticate(SECRET, body, {})
    with pytest.raises(AuthenticationError, match="mismatch"):
        authenticate(SECRET, body + b" ", {"X-TV-Signature": sign_body(SECRET, body)})


def test_missing_signature_is_401(client, mock_pipeline):
    r = _post(client, ALERT, secret=None)
    assert r.status_code == 401
    mock_pipeline.admit.assert_not_called()


def test_wrong_secret_is_401(client, mock_pipeline):
    r = _post(client, ALERT, secret="not-the-secret")
    assert r.status_code == 401
    mock_pipeline.admit.assert_not_called()


# --- admission ---

def test_valid_alert_is_admitted_and_processed_in_background(client, mock_pipeline):
    r = _post(client, ALERT, header="X-Signature")
    assert r.status_code == 200
    data = r.json()
    assert data["ok"] is True and data["id"] == 1 and data["dedup"] is False

    alert = mock_pipeline.admit.call_args.args[0]
    assert alert.symbol.value == "BTCUSDT"
    assert alert.side.value == "BUY"
    assert alert.stop.value == Decimal("64000")
    assert [t.value for t in alert.targets] == [Decimal("66000"), Decimal("67000")]
    assert alert.rationale == "range breakout"
    assert data["fingerprint"] == alert.fingerprint
    mock_pipeline.process_admitted.assert_awaited_once_with(1)


def test_duplicate_is_acknowledged_without_processing(client, mock_pipeline):
    mock_pipeline.admit.side_effect = DuplicateAlert("f" * 64, 1)
    r = _post(client, ALERT)
    assert r.status_code == 200
    assert r.json()["dedup"] is True and r.json()["id"] == 1
    mock_pipeline.process_admitted.assert_not_awaited()


@pytest.mark.parametrize("payload", [
    {k: v for k, v in ALERT.items() if k != "sl"},
    {**ALERT, "side": "sideways"},
    {**ALERT, "entry": -5},
    {**ALERT, "symbol": "!!!"},
    b"not json",
])
def test_malformed_alert_is_400(client, mock_pipeline, payload):
    r = _post(client, payload)
    assert r.status_code == 400
    mock_pipeline.admit.assert_not_called()


def test_store_outage_is_503(client, mock_pipeline):
    mock_pipeline.admit.side_effect = StoreUnavailable("down")
    r = _post(client, ALERT)
    assert r.status_code == 503


def test_no_pipeline_is_503():
    app = FastAPI()
    app.include_router(tradingview_router)
    app.state.services = {}
    r = _post(TestClient(app), ALERT)
    assert r.status_code == 503


# --- status ---

def test_health(client, mock_pipeline):
    mock_pipeline.status_report.return_value = {
        "mode": "paper", "daily_pnl": "0", "drawdown_limit_fraction": "0.05",
        "drawdown_limit_usd": "5000", "equity": "100000", "ts": "2026-01-02T00:00:00+00:00",
    }
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["mode"] == "paper"


def test_pnl_adjustment_requires_api_key(client, mock_pipeline):
    mock_pipeline.adjust_pnl.return_value = Decimal("-125.5")

    assert client.post("/ledger/pnl", json={"delta": "-125.5"}).status_code == 401
    assert client.post("/ledger/pnl", json={"delta": "-125.5"}, headers={"X-API-Key": "wrong"}).status_code == 401

    r = client.post("/ledger/pnl", json={"delta": "-125.5"}, headers=HEADERS)
    assert r.status_code == 200
    assert r.json()["daily_pnl"] == "-125.5"
    mock_pipeline.adjust_pnl.assert_called_once_with(Decimal("-125.5"))
