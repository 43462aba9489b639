# db.py
"""
Ledger database engine and session management.
The ledger URL comes from LEDGER_DATABASE_URL (or DATABASE_URL). When neither
is set the ledger tier is simply off. All writes go through safe_commit:
the ledger being down must never break an evaluation.
"""

import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def create_ledger_engine(database_url: str) -> Engine:
    """
    Build an engine for the ledger. Sessions are opened from worker threads
    (asyncio.to_thread), so SQLite gets check_same_thread=False, and
    in-memory SQLite shares one connection.
    """
    kwargs = {"echo": False, "pool_pre_ping": True}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    return create_engine(database_url, **kwargs)


def make_session_factory(engine: Engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine: Engine):
    # Import models so SQLAlchemy registers tables
    import models  # noqa: F401
    Base.metadata.create_all(bind=engine)


def safe_commit(session) -> bool:
    """Commit. On failure, rollback and log, never raise."""
    try:
        session.commit()
        return True
    except Exception as e:
        session.rollback()
        logger.error("Ledger commit failed (non-fatal): %s", e)
        return False
