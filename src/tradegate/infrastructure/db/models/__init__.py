# --- src/tradegate/infrastructure/db/models/__init__.py ---
"""
Makes the 'models' directory a package and ensures all SQLAlchemy ORM models
are discoverable by Alembic and the application.
"""

from .base import Base, JSONType
from .alert import AlertRecord, TradeRecord, DailyPnlRecord

__all__ = [
    "Base",
    "JSONType",
    "AlertRecord",
    "TradeRecord",
    "DailyPnlRecord",
]
