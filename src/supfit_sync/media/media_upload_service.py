"""Upload coach media and remove the objects it supersedes."""

from __future__ import annotations

import mimetypes
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol, Sequence

import structlog

from ..auth.session_provider import SessionProvider
from ..domain.models import MediaKind
from ..exceptions import AuthRequiredError, classify_error
from .media_paths import canonicalize, classify_media, storage_path_for_upload

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MediaStorage(Protocol):
    bucket: str

    async def upload(
        self,
        path: str,
        data: bytes,
        *,
        content_type: str,
        upsert: bool = False,
        token: str | None = None,
    ) -> str:
        ...

    async def remove(self, paths: Sequence[str], *, token: str | None = None) -> None:
        ...


def guess_content_type(extension: str) -> str:
    ext = extension.lstrip(".").lower()
    guessed, _ = mimetypes.guess_type(f"upload.{ext}")
    if guessed:
        return guessed
    if classify_media(f"upload.{ext}") is MediaKind.VIDEO:
        return "video/mp4"
    return "application/octet-stream"


@dataclass(slots=True)
class MediaUploadService:
    """Store new media under a fresh canonical path."""

    storage: MediaStorage
    session: SessionProvider
    folder: str = "workouts"
    clock: Callable[[], datetime] = field(default=_utcnow)

    async def upload(
        self,
        data: bytes,
        *,
        extension: str,
        content_type: str | None = None,
    ) -> str:
        """Upload ``data`` and return its canonical path."""

        session = await self.session.current()
        if session is None:
            raise AuthRequiredError()
        path = storage_path_for_upload(self.folder, session.user_id, extension, now=self.clock())
        try:
            await self.storage.upload(
                path,
                data,
                content_type=content_type or guess_content_type(extension),
                token=session.access_token,
            )
        except Exception as exc:
            error = classify_error(exc)
            logger.warning("media.upload.failed", path=path, error_kind=error.kind.value)
            raise error from exc
        logger.info("media.upload.completed", path=path, kind=classify_media(path).value)
        return path

    async def replace(
        self,
        data: bytes,
        *,
        extension: str,
        previous: str | None,
        content_type: str | None = None,
    ) -> str:
        """Upload replacement media, then delete the object it replaces.

        ``previous`` may be a canonical path or any backend URL of the old
        object. Deleting it is best effort: the new path is returned even if
        the old object stays behind.
        """

        path = await self.upload(data, extension=extension, content_type=content_type)
        old_path = canonicalize(previous, bucket=self.storage.bucket)
        if not old_path or old_path == path:
            return path
        session = await self.session.current()
        try:
            await self.storage.remove(
                [old_path],
                token=session.access_token if session is not None else None,
            )
        except Exception as exc:
            logger.warning("media.replace.cleanup_failed", path=old_path, error=str(exc))
        else:
            logger.info("media.replace.removed", path=old_path)
        return path


__all__ = ["MediaStorage", "MediaUploadService", "guess_content_type"]
