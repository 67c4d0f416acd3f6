"""
Database engine, session factory, and metadata shared across the application.

Engines are built from an explicit ``Settings`` instance; nothing here connects
at import time.
"""

from __future__ import annotations

from contextlib import contextmanager
from functools import lru_cache
import logging
from typing import Any, Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from trailer_rental.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

Base = declarative_base()

_DEFAULT_POOL_KWARGS: dict[str, Any] = {
    "pool_size": 5,
    "max_overflow": 10,
    "pool_timeout": 5,
    "pool_recycle": 300,
    "pool_pre_ping": True,
}


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def build_engine(settings: Settings) -> Engine:
    """Create the SQLAlchemy engine described by ``settings``."""
    url = settings.database_url
    if _is_sqlite(url):
        # SQLite pools are per-thread; FastAPI runs sync handlers in a threadpool.
        return create_engine(
            url,
            echo=settings.database_echo,
            connect_args={"check_same_thread": False},
        )
    return create_engine(url, echo=settings.database_echo, **_DEFAULT_POOL_KWARGS)


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@contextmanager
def session_scope(factory: sessionmaker) -> Iterator[Session]:
    """Session for a unit of work outside the request cycle (Celery tasks, scripts)."""
    session: Session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@lru_cache(maxsize=1)
def get_session_factory() -> sessionmaker:
    """Process-wide session factory for composition roots (app startup, Celery tasks)."""
    return build_session_factory(build_engine(get_settings()))
