"""Relational store client speaking the PostgREST wire format."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from .http import BackendHttpClient, decode_json


@dataclass(slots=True)
class RestClient(BackendHttpClient):
    """Upsert and select rows through ``/rest/v1``."""

    async def upsert(
        self,
        table: str,
        rows: Mapping[str, Any] | Sequence[Mapping[str, Any]],
        *,
        on_conflict: str,
        token: str | None = None,
    ) -> list[dict[str, Any]]:
        """Insert ``rows`` or merge them into existing rows matching ``on_conflict``."""

        payload = [dict(rows)] if isinstance(rows, Mapping) else [dict(row) for row in rows]
        headers = self._headers(
            token,
            Prefer="resolution=merge-duplicates,return=representation",
        )
        async with self._client() as client:
            response = await client.post(
                self._url("rest/v1", table),
                headers=headers,
                params={"on_conflict": on_conflict},
                json=payload,
            )
        self._raise_for_status(response, operation=f"upsert {table}")
        if response.status_code == 204:
            return []
        body = decode_json(response, operation=f"upsert {table}")
        return list(body) if isinstance(body, list) else []

    async def select(
        self,
        table: str,
        *,
        filters: Mapping[str, Any] | None = None,
        columns: str = "*",
        token: str | None = None,
    ) -> list[dict[str, Any]]:
        """Return rows of ``table`` whose columns equal ``filters``."""

        params: dict[str, str] = {"select": columns}
        for column, value in (filters or {}).items():
            params[column] = f"eq.{value}"
        async with self._client() as client:
            response = await client.get(
                self._url("rest/v1", table),
                headers=self._headers(token),
                params=params,
            )
        self._raise_for_status(response, operation=f"select {table}")
        body = decode_json(response, operation=f"select {table}")
        return list(body) if isinstance(body, list) else []


__all__ = ["RestClient"]
