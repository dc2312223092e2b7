from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response

router = APIRouter(prefix="/metrics", tags=["metrics"])

REQUESTS = Counter("tg_requests_total", "Total webhook requests")
LATENCY = Histogram("tg_request_latency_seconds", "Webhook request latency")

ALERTS = Counter("tg_alerts_total", "Inbound alerts by admission outcome", ["outcome"])
DECISIONS = Counter("tg_decisions_total", "Operator decisions that won the transition", ["decision"])
TERMINALS = Counter("tg_alert_terminal_total", "Alerts reaching a terminal status", ["status"])
ORDERS = Counter("tg_orders_total", "Routed orders by venue and result", ["venue", "status"])
ROUTER_ATTEMPTS = Counter("tg_router_attempts_total", "Venue calls made by the order router", ["venue"])


@router.get("")
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
