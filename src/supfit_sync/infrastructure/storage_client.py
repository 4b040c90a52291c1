"""Object storage client for the private media bucket."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence
from urllib.parse import quote

from ..exceptions import BackendError
from .http import BackendHttpClient, decode_json


@dataclass(slots=True)
class StorageClient(BackendHttpClient):
    """Upload, sign and delete objects addressed by canonical path."""

    bucket: str = "user-uploads"

    async def upload(
        self,
        path: str,
        data: bytes,
        *,
        content_type: str,
        upsert: bool = False,
        token: str | None = None,
    ) -> str:
        """Store ``data`` under ``path`` and return the canonical path."""

        headers = self._headers(
            token,
            **{"Content-Type": content_type, "x-upsert": "true" if upsert else "false"},
        )
        async with self._client() as client:
            response = await client.post(
                self._url("storage/v1/object", self.bucket, quote(path)),
                headers=headers,
                content=data,
            )
        self._raise_for_status(response, operation="storage upload")
        self.log.info(
            "storage.upload.completed",
            extra={"bucket": self.bucket, "path": path, "size_bytes": len(data)},
        )
        return path

    async def create_signed_url(
        self,
        path: str,
        *,
        expires_in: int,
        token: str | None = None,
    ) -> str:
        """Sign ``path`` directly against the bucket for ``expires_in`` seconds."""

        async with self._client() as client:
            response = await client.post(
                self._url("storage/v1/object/sign", self.bucket, quote(path)),
                headers=self._headers(token),
                json={"expiresIn": expires_in},
            )
        self._raise_for_status(response, operation="storage sign")
        body = decode_json(response, operation="storage sign")
        signed = None
        if isinstance(body, dict):
            signed = body.get("signedURL") or body.get("signedUrl")
        if not signed:
            raise BackendError("storage sign response missing signedURL", status_code=response.status_code)
        signed = str(signed)
        if signed.startswith("http://") or signed.startswith("https://"):
            return signed
        return self._url("storage/v1", signed)

    async def remove(self, paths: Sequence[str], *, token: str | None = None) -> None:
        """Delete the objects at ``paths``."""

        if not paths:
            return
        async with self._client() as client:
            response = await client.request(
                "DELETE",
                self._url("storage/v1/object", self.bucket),
                headers=self._headers(token),
                json={"prefixes": list(paths)},
            )
        self._raise_for_status(response, operation="storage remove")
        self.log.info(
            "storage.remove.completed",
            extra={"bucket": self.bucket, "paths": list(paths)},
        )


__all__ = ["StorageClient"]
