# src/tradegate/domain/__init__.py
from .entities import (
    Alert,
    AlertStatus,
    Decision,
    SizeInfo,
    Trade,
    TradeStatus,
    Venue,
    TERMINAL_STATUSES,
    can_transition,
)
from .value_objects import Symbol, Side, Price
from .fingerprint import compute_fingerprint
from .venues import map_symbol_to_venue

__all__ = [
    "Alert",
    "AlertStatus",
    "Decision",
    "SizeInfo",
    "Trade",
    "TradeStatus",
    "Venue",
    "TERMINAL_STATUSES",
    "can_transition",
    "Symbol",
    "Side",
    "Price",
    "compute_fingerprint",
    "map_symbol_to_venue",
]
