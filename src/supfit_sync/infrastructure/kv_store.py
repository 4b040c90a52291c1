"""Durable local key-value store used for success caches and pending writes."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from ..db.db_models import KeyValueModel
from ..exceptions import LocalStoreError, handle_sqlalchemy_errors

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Async key-value contract; values are JSON-serialisable."""

    async def get(self, key: str) -> Any | None:
        ...

    async def set(self, key: str, value: Any) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...

    async def keys(self, prefix: str = "") -> list[str]:
        ...


class SqlAlchemyKeyValueStore:
    """:class:`KeyValueStore` persisted in a local SQLite table."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    async def get(self, key: str) -> Any | None:
        return await asyncio.to_thread(self._get_sync, key)

    async def set(self, key: str, value: Any) -> None:
        await asyncio.to_thread(self._set_sync, key, value)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._delete_sync, key)

    async def keys(self, prefix: str = "") -> list[str]:
        return await asyncio.to_thread(self._keys_sync, prefix)

    def _get_sync(self, key: str) -> Any | None:
        with handle_sqlalchemy_errors(operation=f"get {key}"):
            with self._session_factory() as session:
                record = session.get(KeyValueModel, key)
                raw = record.value if record is not None else None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as exc:
            logger.warning("local_store.decode_failed", extra={"key": key})
            raise LocalStoreError(f"get {key}: stored value is not valid JSON") from exc

    def _set_sync(self, key: str, value: Any) -> None:
        encoded = json.dumps(value, separators=(",", ":"), sort_keys=True)
        with handle_sqlalchemy_errors(operation=f"set {key}"):
            with self._session_factory() as session:
                record = session.get(KeyValueModel, key)
                now = datetime.now(timezone.utc).replace(tzinfo=None)
                if record is None:
                    session.add(KeyValueModel(key=key, value=encoded, updated_at=now))
                else:
                    record.value = encoded
                    record.updated_at = now
                session.commit()

    def _delete_sync(self, key: str) -> None:
        with handle_sqlalchemy_errors(operation=f"delete {key}"):
            with self._session_factory() as session:
                record = session.get(KeyValueModel, key)
                if record is not None:
                    session.delete(record)
                    session.commit()

    def _keys_sync(self, prefix: str) -> list[str]:
        stmt = select(KeyValueModel.key).order_by(KeyValueModel.key)
        if prefix:
            stmt = stmt.where(KeyValueModel.key.startswith(prefix, autoescape=True))
        with handle_sqlalchemy_errors(operation="keys"):
            with self._session_factory() as session:
                return list(session.scalars(stmt))


__all__ = ["KeyValueStore", "SqlAlchemyKeyValueStore"]
