# src/tradegate/interfaces/webhook/tradingview.py
"""
Webhook handler for TradingView alerts.

The raw body is authenticated with HMAC-SHA256 before anything is parsed.
Admission happens inline so the response can report a duplicate; risk checks
and the decision card run as a background task after the 200 is sent.
"""

import hashlib
import hmac
import logging
from typing import Mapping, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from pydantic import ValidationError as PydanticValidationError

from tradegate.application.services.pipeline_service import AlertPipeline, build_alert
from tradegate.config import settings
from tradegate.domain.errors import AuthenticationError, DuplicateAlert, StoreUnavailable, ValidationError
from tradegate.interfaces.api.deps import get_pipeline
from tradegate.interfaces.api.metrics import ALERTS, LATENCY, REQUESTS
from tradegate.interfaces.api.schemas import AlertAccepted, AlertIn

log = logging.getLogger(__name__)
router = APIRouter(prefix="/webhook", tags=["Webhooks"])

SIGNATURE_HEADERS = ("X-TV-Signature", "X-Signature")


def sign_body(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def authenticate(secret: Optional[str], body: bytes, headers: Mapping[str, str]) -> None:
    """Raises AuthenticationError unless the body carries a valid signature. Fails closed."""
    if not secret:
        raise AuthenticationError("webhook secret is not configured")
    provided = next((headers.get(h) for h in SIGNATURE_HEADERS if headers.get(h)), None)
    if not provided:
        raise AuthenticationError("missing signature header")
    if not hmac.compare_digest(sign_body(secret, body), provided.strip().lower()):
        raise AuthenticationError("signature mismatch")


@router.post("/tradingview", response_model=AlertAccepted)
async def tradingview_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    pipeline: AlertPipeline = Depends(get_pipeline),
):
    REQUESTS.inc()
    with LATENCY.time():
        body = await request.body()
        try:
            authenticate(settings.TV_WEBHOOK_SECRET, body, request.headers)
        except AuthenticationError as e:
            log.warning(f"Rejected TradingView request: {e}")
            ALERTS.labels(outcome="unauthorized").inc()
            raise HTTPException(status_code=401, detail="Invalid signature")

        try:
            payload = AlertIn.model_validate_json(body)
            alert = build_alert(**payload.model_dump())
        except (PydanticValidationError, ValidationError) as e:
            log.warning(f"Rejected TradingView alert: {e}")
            ALERTS.labels(outcome="rejected").inc()
            raise HTTPException(status_code=400, detail=str(e))

        try:
            admission = pipeline.admit(alert)
        except DuplicateAlert as e:
            return AlertAccepted(id=e.alert_id, dedup=True)
        except StoreUnavailable as e:
            log.error(f"Alert {alert.fingerprint[:12]} not admitted: {e}")
            raise HTTPException(status_code=503, detail="Store unavailable")

        log.info(f"Received TradingView alert for {alert.symbol} as #{admission.alert_id}")
        background_tasks.add_task(pipeline.process_admitted, admission.alert_id)
        return AlertAccepted(id=admission.alert_id, fingerprint=alert.fingerprint)
