"""Relay log database: engine, session factory and declarative base."""

from __future__ import annotations

from typing import Any, Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from obsrelay.config import settings


def engine_options(db_url: str) -> dict[str, Any]:
    """
    Keyword arguments for ``create_engine``.

    SQLite sessions are opened from FastAPI worker threads and from the
    broker loops alike, so the same-thread check is off. Server databases
    get ``pool_pre_ping``.
    """
    if db_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


engine = create_engine(settings.db_url, **engine_options(settings.db_url))
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
Base = declarative_base()


def get_db() -> Iterator[Session]:
    """Read-only session for the ``/stats`` route."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
