# src/tradegate/infrastructure/db/uow.py
"""Unit of Work: one transaction per `with session_scope()` block."""

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .base import SessionLocal, engine as default_engine
from .models import Base

log = logging.getLogger(__name__)


def create_tables(bind: Optional[Engine] = None) -> None:
    """Creates all tables defined in models if they do not exist."""
    bind = bind or default_engine
    log.info("Creating database tables if they do not exist...")
    try:
        Base.metadata.create_all(bind)
        log.info("Database tables checked/created successfully.")
    except Exception as e:
        log.critical(f"Failed to create database tables: {e}", exc_info=True)
        raise


@contextmanager
def session_scope(factory: Optional[sessionmaker] = None) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.
    Commits on clean exit, rolls back and re-raises on any exception.
    """
    session = (factory or SessionLocal)()
    log.debug(f"Session {id(session)} opened.")
    try:
        yield session
        session.commit()
        log.debug(f"Session {id(session)} committed.")
    except Exception as e:
        log.debug(f"Session {id(session)} rollback due to exception: {e}")
        session.rollback()
        raise
    finally:
        session.close()
