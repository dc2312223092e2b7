# src/tradegate/interfaces/api/deps.py

from __future__ import annotations
import hmac

from fastapi import Header, HTTPException, Request

from tradegate.config import settings
from tradegate.application.services.pipeline_service import AlertPipeline


def get_pipeline(request: Request) -> AlertPipeline:
    """Dependency to get the AlertPipeline instance from the app state."""
    services = getattr(request.app.state, "services", None) or {}
    service = services.get("alert_pipeline")
    if not service:
        raise HTTPException(status_code=503, detail="Alert pipeline is currently unavailable.")
    return service


def require_api_key(x_api_key: str | None = Header(default=None)):
    # No configured key means the admin API is closed.
    if not settings.API_KEY or not x_api_key or not hmac.compare_digest(x_api_key, settings.API_KEY):
        raise HTTPException(status_code=401, detail="Invalid API key")
    return True
