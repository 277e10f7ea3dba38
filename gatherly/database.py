"""Database helpers for Gatherly."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import scoped_session, sessionmaker

from .config import settings


def connect_args_for(url: str) -> dict[str, Any]:
    """Driver arguments for ``url``.

    SQLite connections are shared with the worker threads the feed fans out
    to; other backends take no extra arguments.
    """
    if make_url(url).get_backend_name() == "sqlite":
        return {"check_same_thread": False}
    return {}


DATABASE_URL = settings.database_url
engine = create_engine(
    DATABASE_URL,
    connect_args=connect_args_for(DATABASE_URL),
    future=True,
)
SessionLocal = scoped_session(
    sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        future=True,
        expire_on_commit=False,
    )
)


@contextmanager
def get_session():
    """Context manager returning a SQLAlchemy session."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
