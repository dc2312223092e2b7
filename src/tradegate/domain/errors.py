# src/tradegate/domain/errors.py
"""
Error taxonomy of the alert pipeline.

Boundary errors (ValidationError, AuthenticationError) are raised before an
alert exists and never create a record. Everything else is recorded on the
alert's status and surfaced to the operator.
"""

from typing import Optional


class TradeGateError(Exception):
    """Base class for all pipeline errors."""


class ValidationError(TradeGateError):
    """Malformed or incomplete inbound alert."""


class AuthenticationError(TradeGateError):
    """Inbound request failed the shared-secret signature check."""


class DuplicateAlert(TradeGateError):
    """Fingerprint already admitted. Informational, never re-triggers side effects."""

    def __init__(self, fingerprint: str, alert_id: int):
        super().__init__(f"Alert {fingerprint[:12]} already admitted (id={alert_id})")
        self.fingerprint = fingerprint
        self.alert_id = alert_id


class RiskBlocked(TradeGateError):
    """Degenerate stop or drawdown breach."""

    def __init__(self, reason: str, detail: str = ""):
        super().__init__(f"{reason}: {detail}" if detail else reason)
        self.reason = reason
        self.detail = detail


class DecisionExpired(TradeGateError):
    """No operator decision within the configured timeout."""


class RouterError(TradeGateError):
    """Base class for venue routing failures."""

    def __init__(self, message: str, *, venue: Optional[str] = None, payload: Optional[dict] = None):
        super().__init__(message)
        self.venue = venue
        self.payload = payload or {}


class RouterTransientError(RouterError):
    """Network fault, rate limit or 5xx. Retried with backoff."""


class RouterTerminalError(RouterError):
    """Bad symbol, precision, balance or unroutable venue. Never retried."""


class StoreUnavailable(TradeGateError):
    """Persistence layer fault. The caller must not guess the alert's state."""
