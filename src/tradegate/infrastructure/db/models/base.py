# --- START OF FILE: src/tradegate/infrastructure/db/models/base.py ---
from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase

# JSONB on PostgreSQL, plain JSON everywhere else (SQLite).
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """The base class for all SQLAlchemy ORM models."""
    pass
# --- END OF FILE ---
