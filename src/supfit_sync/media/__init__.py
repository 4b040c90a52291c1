"""Canonical media paths, signed URL caching and uploads."""

from .media_paths import canonicalize, classify_media, storage_path_for_upload
from .media_upload_service import MediaUploadService
from .signed_url_cache import SignedUrlCache

__all__ = [
    "MediaUploadService",
    "SignedUrlCache",
    "canonicalize",
    "classify_media",
    "storage_path_for_upload",
]
