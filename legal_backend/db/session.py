"""
Database Session Management
===========================

One engine per DATABASE_URL. The URL is re-read from settings on every
access so tests can point the app at a fresh SQLite file and call
reset_engine().

Three ways to get a session:
- get_db: FastAPI dependency, closed when the request ends
- get_db_session: context manager that commits on success
- DatabaseManager: for code that outlives a request (SSE streams, RQ tasks)
"""

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool

from ..config import get_settings
from .models import Base

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_engine_url: Optional[str] = None

# Bound lazily in get_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False)


def _build_engine(database_url: str) -> Engine:
    settings = get_settings()

    if database_url.startswith("sqlite"):
        # SSE streams write from their own sessions while requests read
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": 15},
            echo=settings.sql_echo,
        )

    return create_engine(
        database_url,
        poolclass=QueuePool,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        connect_args={"connect_timeout": settings.db_connect_timeout},
        echo=settings.sql_echo,
    )


def get_engine() -> Engine:
    global _engine, _engine_url
    database_url = get_settings().database_url
    if _engine is None or _engine_url != database_url:
        if _engine is not None:
            _engine.dispose()
        _engine = _build_engine(database_url)
        _engine_url = database_url
        SessionLocal.configure(bind=_engine)
        logger.info(f"Database engine created ({database_url.split(':', 1)[0]})")
    return _engine


def reset_engine():
    """Dispose the engine; the next access rebuilds it from settings"""
    global _engine, _engine_url
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _engine_url = None
    SessionLocal.configure(bind=None)


def init_db():
    """Create missing tables"""
    Base.metadata.create_all(bind=get_engine())


def get_db() -> Generator[Session, None, None]:
    get_engine()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """
    Usage:
        with get_db_session() as db:
            db.add(Artifact(...))
    """
    get_engine()
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


class DatabaseManager:
    """Session owner for work running outside a request"""

    def __init__(self):
        self._session: Optional[Session] = None

    def __enter__(self) -> "DatabaseManager":
        get_engine()
        self._session = SessionLocal()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._session is None:
            return
        if exc_type:
            self._session.rollback()
        else:
            self._session.commit()
        self._session.close()

    @property
    def session(self) -> Session:
        return self._session
