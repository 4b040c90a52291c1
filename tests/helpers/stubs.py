from __future__ import annotations

import copy
from datetime import datetime, timedelta
from typing import Any, Mapping

from supfit_sync.domain.models import Session
from supfit_sync.exceptions import AuthRequiredError


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class StubSessionProvider:
    def __init__(self, user_id: str | None = "user-1", access_token: str = "token-1") -> None:
        self.user_id = user_id
        self.access_token = access_token

    async def current(self) -> Session | None:
        if self.user_id is None:
            return None
        return Session(user_id=self.user_id, access_token=self.access_token)

    async def require_user_id(self) -> str:
        if self.user_id is None:
            raise AuthRequiredError()
        return self.user_id


class InMemoryKeyValueStore:
    def __init__(self) -> None:
        self.data: dict[str, Any] = {}

    async def get(self, key: str) -> Any | None:
        value = self.data.get(key)
        return copy.deepcopy(value)

    async def set(self, key: str, value: Any) -> None:
        self.data[key] = copy.deepcopy(value)

    async def delete(self, key: str) -> None:
        self.data.pop(key, None)

    async def keys(self, prefix: str = "") -> list[str]:
        return sorted(key for key in self.data if key.startswith(prefix))


class RecordingRestStore:
    """Upsert/select store keeping rows keyed by their conflict columns."""

    def __init__(self) -> None:
        self.tables: dict[str, dict[tuple[Any, ...], dict[str, Any]]] = {}
        self.upserts: list[tuple[str, dict[str, Any], str, str | None]] = []
        self.failures: list[BaseException] = []
        self.select_failures: list[BaseException] = []

    def fail_next(self, *errors: BaseException) -> None:
        self.failures.extend(errors)

    async def upsert(
        self,
        table: str,
        rows: Mapping[str, Any],
        *,
        on_conflict: str,
        token: str | None = None,
    ) -> list[dict[str, Any]]:
        row = dict(rows)
        self.upserts.append((table, row, on_conflict, token))
        if self.failures:
            raise self.failures.pop(0)
        key = tuple(row[column] for column in on_conflict.split(","))
        stored = self.tables.setdefault(table, {})
        merged = {**stored.get(key, {}), **row}
        stored[key] = merged
        return [dict(merged)]

    async def select(
        self,
        table: str,
        *,
        filters: Mapping[str, Any] | None = None,
        columns: str = "*",
        token: str | None = None,
    ) -> list[dict[str, Any]]:
        if self.select_failures:
            raise self.select_failures.pop(0)
        rows = list(self.tables.get(table, {}).values())
        for column, value in (filters or {}).items():
            rows = [row for row in rows if row.get(column) == value]
        return [dict(row) for row in rows]
