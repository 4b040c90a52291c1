"""Service container for the sync core."""

from .container import SyncServices, build_sync_services

__all__ = ["SyncServices", "build_sync_services"]
