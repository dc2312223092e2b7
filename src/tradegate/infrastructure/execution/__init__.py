# src/tradegate/infrastructure/execution/__init__.py
from .base import VenueClient, OrderRequest, OrderResult, floor_to_step
from .retry import RetryPolicy, retry_async
from .binance_exec import BinanceExec, BinanceCreds
from .oanda_exec import OandaExec
from .alpaca_exec import AlpacaExec

__all__ = [
    "VenueClient", "OrderRequest", "OrderResult", "floor_to_step",
    "RetryPolicy", "retry_async",
    "BinanceExec", "BinanceCreds", "OandaExec", "AlpacaExec",
]
