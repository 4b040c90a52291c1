"""Local database initialization helpers."""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .db_models import Base


def create_local_engine(url: str) -> Engine:
    """Create the engine backing the local store.

    In-memory SQLite shares one connection so worker threads see the same data.
    """

    if url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            url,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    if url.startswith("sqlite"):
        return create_engine(url, future=True, connect_args={"check_same_thread": False})
    return create_engine(url, future=True)


def init_db(engine: Engine) -> sessionmaker[Session]:
    """Create tables if missing and return a session factory."""
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)
