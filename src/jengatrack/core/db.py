"""
Database engine and sessions.

The schema belongs to the hosted Postgres project; this module only connects
to it. Engine and sessionmaker are built on first use.
"""

import functools
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from jengatrack.core.settings import get_settings

Base = declarative_base()


def engine_options(url: str) -> dict:
    """Connection options for a database URL."""
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_size": 5, "max_overflow": 10}


@functools.lru_cache()
def get_engine() -> Engine:
    """Engine for DATABASE_URL (cached)."""
    url = get_settings().DATABASE_URL
    return create_engine(url, echo=False, **engine_options(url))


@functools.lru_cache()
def get_sessionmaker() -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=get_engine())


def get_db() -> Iterator[Session]:
    """FastAPI dependency: one session per request, always closed."""
    db = get_sessionmaker()()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session for scripts and the CLI; rolled back on error."""
    db = get_sessionmaker()()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
