"""Resilient client-side sync core for the Supfit coaching app."""

from .config import SyncConfig
from .context import AppContext, UserRole
from .exceptions import ErrorKind, SyncError, classify_error
from .lifecycle import AppLifecycle
from .services import SyncServices, build_sync_services

__all__ = [
    "AppContext",
    "AppLifecycle",
    "ErrorKind",
    "SyncConfig",
    "SyncError",
    "SyncServices",
    "UserRole",
    "build_sync_services",
    "classify_error",
]
