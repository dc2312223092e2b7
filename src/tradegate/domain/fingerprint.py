# src/tradegate/domain/fingerprint.py
"""
Deterministic alert fingerprints.

Only fields that change the economic meaning of an alert take part. Delivery
timestamps, confidence and free-text rationale are excluded so a redelivered
signal collapses onto the original record.
"""

import hashlib
import json
from typing import Dict, Any

from .entities import Alert

FINGERPRINT_FIELDS = ("symbol", "timeframe", "side", "entry", "stop", "targets", "risk_pct")


def canonical_fields(alert: Alert) -> Dict[str, Any]:
    payload = alert.to_payload()
    return {k: payload[k] for k in FINGERPRINT_FIELDS}


def compute_fingerprint(alert: Alert) -> str:
    canonical = json.dumps(canonical_fields(alert), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
