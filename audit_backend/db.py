# audit_backend/db.py
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base, Session

from audit_backend import config
from audit_backend.monitoring import logger

Base = declarative_base()

engine: Optional[Engine] = None
SessionLocal: Optional[sessionmaker] = None


class PrimaryUnavailable(RuntimeError):
    """Raised when the primary store is not configured or failed to initialise."""


def _make_engine(url: str) -> Engine:
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args, pool_pre_ping=True)


def reconfigure(url: str):
    """Reconfigure the DB engine and session factory at runtime (for tests).

    An empty url disables the primary store.
    """
    global engine, SessionLocal
    if engine is not None:
        engine.dispose()
    if not url:
        engine = None
        SessionLocal = None
        return
    engine = _make_engine(url)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


def is_configured() -> bool:
    return SessionLocal is not None


def init_db() -> bool:
    """Create tables if they don't exist. Returns False (and disables the primary) on failure."""
    global engine, SessionLocal
    if engine is None:
        logger.warning("No DATABASE_URL configured; running on the local fallback store")
        return False
    try:
        import audit_backend.models as models  # noqa: F401
        Base.metadata.create_all(bind=engine)
        return True
    except Exception as e:
        # don't crash the app at import time; every call will fall back instead
        logger.warning("Primary DB init failed, continuing without it", extra={"error": str(e)})
        engine = None
        SessionLocal = None
        return False


def get_session() -> Session:
    if SessionLocal is None:
        raise PrimaryUnavailable("primary store is not configured")
    return SessionLocal()


reconfigure(config.DATABASE_URL)
