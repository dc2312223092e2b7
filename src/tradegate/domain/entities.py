# src/tradegate/domain/entities.py
"""
Core entities of the alert pipeline: the Alert moving through confirmation,
the SizeInfo derived for it, and the Trade recorded once a venue answers.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, List, Dict, Any, FrozenSet

from .value_objects import Symbol, Side, Price, to_decimal


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- ENUMERATIONS ---

class AlertStatus(Enum):
    """Lifecycle states of an alert."""
    PENDING = "PENDING"
    AWAITING_DECISION = "AWAITING_DECISION"
    CONFIRMED = "CONFIRMED"
    EXECUTED = "EXECUTED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"
    BLOCKED = "BLOCKED"
    ERROR = "ERROR"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: FrozenSet[AlertStatus] = frozenset({
    AlertStatus.EXECUTED,
    AlertStatus.CANCELLED,
    AlertStatus.EXPIRED,
    AlertStatus.BLOCKED,
    AlertStatus.ERROR,
})

ALLOWED_TRANSITIONS: Dict[AlertStatus, FrozenSet[AlertStatus]] = {
    AlertStatus.PENDING: frozenset({AlertStatus.AWAITING_DECISION, AlertStatus.BLOCKED, AlertStatus.ERROR}),
    AlertStatus.AWAITING_DECISION: frozenset({AlertStatus.CONFIRMED, AlertStatus.CANCELLED, AlertStatus.EXPIRED}),
    AlertStatus.CONFIRMED: frozenset({AlertStatus.EXECUTED, AlertStatus.BLOCKED, AlertStatus.ERROR}),
}


def can_transition(current: AlertStatus, new: AlertStatus) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, frozenset())


class Decision(Enum):
    """Outcomes the confirmation surface can resolve to."""
    CONFIRM = "confirm"
    CANCEL = "cancel"
    EXPIRE = "expire"


class Venue(Enum):
    CRYPTO = "crypto"
    FX = "fx"
    INDEX = "index"
    EQUITIES = "equities"
    UNKNOWN = "unknown"


class TradeStatus(Enum):
    SUBMITTED = "submitted"
    PAPER_SIMULATED = "paper_simulated"
    FAILED = "failed"


# --- ENTITIES ---

@dataclass
class Alert:
    """A candidate trade signal awaiting risk-check, confirmation and execution."""
    symbol: Symbol
    timeframe: str
    side: Side
    entry: Price
    stop: Price
    targets: List[Price]
    fingerprint: str

    id: Optional[int] = None
    confidence: Optional[float] = None
    rationale: Optional[str] = None
    risk_pct: Optional[Decimal] = None

    status: AlertStatus = AlertStatus.PENDING
    status_reason: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict, repr=False)

    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def stop_distance(self) -> Decimal:
        return abs(self.entry.value - self.stop.value)

    @property
    def message_ref(self) -> Optional[tuple]:
        """(chat_id, message_id) of the confirmation card, once presented."""
        ref = self.meta.get("message")
        if not ref:
            return None
        return ref.get("chat_id"), ref.get("message_id")

    def to_payload(self) -> Dict[str, Any]:
        """JSON-safe normalized payload, the form the store persists."""
        return {
            "symbol": self.symbol.value,
            "timeframe": self.timeframe,
            "side": self.side.value,
            "entry": self.entry.normalized(),
            "stop": self.stop.normalized(),
            "targets": [t.normalized() for t in self.targets],
            "confidence": self.confidence,
            "rationale": self.rationale,
            "risk_pct": None if self.risk_pct is None else format(self.risk_pct.normalize(), "f"),
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], *, fingerprint: str, **record: Any) -> "Alert":
        risk_pct = payload.get("risk_pct")
        return cls(
            symbol=Symbol(payload["symbol"]),
            timeframe=payload["timeframe"],
            side=Side(payload["side"]),
            entry=Price.of(payload["entry"]),
            stop=Price.of(payload["stop"]),
            targets=[Price.of(t) for t in payload.get("targets") or []],
            fingerprint=fingerprint,
            confidence=payload.get("confidence"),
            rationale=payload.get("rationale"),
            risk_pct=None if risk_pct is None else to_decimal(risk_pct),
            **record,
        )


@dataclass(frozen=True)
class SizeInfo:
    """Position size derived at Risk Gate evaluation time. Never stored on its own."""
    units: Decimal
    risk_amount: Decimal
    stop_distance: Decimal
    risk_pct: Decimal

    @property
    def is_degenerate(self) -> bool:
        return self.units <= 0

    def as_dict(self) -> Dict[str, str]:
        return {
            "units": str(self.units),
            "risk_amount": str(self.risk_amount),
            "stop_distance": str(self.stop_distance),
            "risk_pct": str(self.risk_pct),
        }


@dataclass
class Trade:
    """A routed order. Back-references its alert by id only."""
    id: str
    alert_id: int
    router: str
    symbol: str
    side: str
    entry: Decimal
    stop: Decimal
    targets: List[Decimal]
    units: Decimal
    status: TradeStatus
    order_id: Optional[str] = None
    client_order_id: Optional[str] = None
    raw_response: Dict[str, Any] = field(default_factory=dict, repr=False)
    error: Optional[str] = None
    attempts: int = 0
    created_at: datetime = field(default_factory=utcnow)
