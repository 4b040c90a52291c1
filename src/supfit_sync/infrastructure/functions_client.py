"""Client for serverless functions hosted next to the backend."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from .http import BackendHttpClient, decode_json

SIGNED_URL_FIELDS = ("signedUrl", "signed_url", "url")


def extract_signed_url(body: Any) -> str | None:
    """Return the signed URL from a signing function response, if any."""

    if not isinstance(body, Mapping):
        return None
    for field_name in SIGNED_URL_FIELDS:
        value = body.get(field_name)
        if isinstance(value, str) and value:
            return value
    return None


@dataclass(slots=True)
class FunctionsClient(BackendHttpClient):
    """Invoke functions under ``/functions/v1``."""

    async def invoke(
        self,
        name: str,
        body: Mapping[str, Any],
        *,
        token: str | None = None,
    ) -> Any:
        async with self._client() as client:
            response = await client.post(
                self._url("functions/v1", name),
                headers=self._headers(token),
                json=dict(body),
            )
        self._raise_for_status(response, operation=f"function {name}")
        return decode_json(response, operation=f"function {name}")


__all__ = ["FunctionsClient", "SIGNED_URL_FIELDS", "extract_signed_url"]
