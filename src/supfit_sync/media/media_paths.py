"""Canonical storage paths for private media.

The backend hands out absolute object URLs (public, authenticated or signed
variants). Only the bucket-relative path is stable, so the client stores and
caches by that path and re-derives URLs on demand.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import PurePosixPath
from urllib.parse import quote, urlsplit

from ..domain.models import MediaKind

VIDEO_EXTENSIONS = frozenset({"mp4", "mov", "m4v", "webm", "avi", "mkv", "3gp", "quicktime"})


def is_absolute_url(value: str) -> bool:
    try:
        parts = urlsplit(value)
    except ValueError:
        return False
    return bool(parts.scheme and parts.netloc)


def canonicalize(url: str | None, *, bucket: str) -> str | None:
    """Return the bucket-relative path for ``url``.

    Non-absolute input is assumed canonical and returned unchanged. Absolute
    URLs without the bucket segment in their path cannot be resolved and
    yield ``None``; query and fragment are never searched.
    """

    if url is None:
        return None
    if not is_absolute_url(url):
        return url

    path = urlsplit(url).path
    for marker in _bucket_markers(bucket):
        index = path.find(marker)
        if index == -1:
            continue
        return path[index + len(marker):]
    return None


def classify_media(path: str | None) -> MediaKind:
    """Derive the media kind from the extension of ``path`` without I/O."""

    if not path:
        return MediaKind.NONE
    cleaned = path.split("?", 1)[0].split("#", 1)[0]
    name = cleaned.rsplit("/", 1)[-1]
    suffix = PurePosixPath(name).suffix if name else ""
    extension = suffix[1:].lower()
    if not extension:
        return MediaKind.NONE
    if extension in VIDEO_EXTENSIONS:
        return MediaKind.VIDEO
    return MediaKind.IMAGE


def storage_path_for_upload(folder: str, owner_id: str, extension: str, *, now: datetime) -> str:
    """Build a fresh canonical path ``folder/<owner>_<epoch ms>.<ext>``."""

    ext = extension.lstrip(".").lower() or "bin"
    stamp = int(now.timestamp() * 1000)
    prefix = folder.strip("/")
    filename = f"{owner_id}_{stamp}.{ext}"
    return f"{prefix}/{filename}" if prefix else filename


def _bucket_markers(bucket: str) -> tuple[str, ...]:
    name = bucket.strip("/")
    encoded = quote(name)
    if encoded == name:
        return (f"/{name}/",)
    return (f"/{name}/", f"/{encoded}/")


__all__ = [
    "VIDEO_EXTENSIONS",
    "canonicalize",
    "classify_media",
    "is_absolute_url",
    "storage_path_for_upload",
]
