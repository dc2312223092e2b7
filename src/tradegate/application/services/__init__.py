# src/tradegate/application/services/__init__.py
from .idempotency_service import IdempotencyService, Admission
from .risk_service import RiskGate, AccountState, Admit, Block
from .confirmation_service import ConfirmationBroker, DecisionOutcome
from .router_service import OrderRouter, TradeResult
from .ledger_service import LedgerService
from .pipeline_service import AlertPipeline, build_alert

__all__ = [
    "IdempotencyService", "Admission",
    "RiskGate", "AccountState", "Admit", "Block",
    "ConfirmationBroker", "DecisionOutcome",
    "OrderRouter", "TradeResult",
    "LedgerService",
    "AlertPipeline", "build_alert",
]
