# src/tradegate/infrastructure/db/base.py
"""
Database engine setup and session management.

Decimals are serialized as strings so that JSON columns holding prices and
raw venue responses never lose precision.
"""

import json
from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tradegate.config import settings


def _custom_json_serializer(obj):
    if isinstance(obj, Decimal):
        return str(obj)
    raise TypeError(f"Object of type {obj.__class__.__name__} is not JSON serializable")


def make_engine(url: str) -> Engine:
    """
    Builds an engine for the given URL.

    In-memory SQLite shares one connection across threads so every session sees
    the same database.
    """
    kwargs = {
        "json_serializer": lambda obj: json.dumps(obj, default=_custom_json_serializer),
        "pool_pre_ping": True,
    }
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_recycle"] = 3600
    return create_engine(url, **kwargs)


def make_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(bind=bind, autoflush=False, autocommit=False, expire_on_commit=False)


engine = make_engine(settings.DATABASE_URL)
SessionLocal = make_session_factory(engine)
