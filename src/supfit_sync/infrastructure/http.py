"""Shared plumbing for the hosted backend HTTP clients."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from ..exceptions import BackendError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class BackendHttpClient:
    """Base class holding the backend location and API key."""

    base_url: str
    anon_key: str
    timeout_seconds: float = 10.0
    log: logging.Logger = field(default_factory=lambda: logger)

    def _url(self, *parts: str) -> str:
        base = self.base_url.rstrip("/")
        tail = "/".join(part.strip("/") for part in parts if part)
        return f"{base}/{tail}"

    def _headers(self, token: str | None = None, **extra: str) -> dict[str, str]:
        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {token or self.anon_key}",
        }
        headers.update(extra)
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout_seconds)

    def _raise_for_status(self, response: Any, *, operation: str) -> None:
        status = response.status_code
        if 200 <= status < 300:
            return
        message, code = _parse_error_body(response)
        self.log.warning(
            "backend.request.failed",
            extra={"operation": operation, "status_code": status, "code": code},
        )
        raise BackendError(
            message or f"{operation} failed with status {status}",
            status_code=status,
            code=code,
        )


def _parse_error_body(response: Any) -> tuple[str | None, str | None]:
    try:
        body = response.json()
    except ValueError:
        text = getattr(response, "text", "") or None
        return text, None
    if not isinstance(body, dict):
        return None, None
    message = body.get("message") or body.get("error_description") or body.get("error")
    code = body.get("code")
    return (str(message) if message else None), (str(code) if code is not None else None)


def decode_json(response: Any, *, operation: str) -> Any:
    """Return the decoded JSON body or raise :class:`BackendError`."""

    try:
        return response.json()
    except ValueError as exc:
        raise BackendError(
            f"{operation} returned a non-JSON body",
            status_code=response.status_code,
        ) from exc


__all__ = ["BackendHttpClient", "decode_json"]
