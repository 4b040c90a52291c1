"""Persistence helpers for the durable local store."""

from .db_init import create_local_engine, init_db
from .db_models import Base, KeyValueModel

__all__ = ["Base", "KeyValueModel", "create_local_engine", "init_db"]
