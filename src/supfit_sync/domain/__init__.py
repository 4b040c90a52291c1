"""Domain records and timing helpers."""

from .models import (
    AppState,
    MediaKind,
    OptimisticCounter,
    PendingWrite,
    RetryPhase,
    RetryState,
    SaveStatus,
    Session,
    SignedUrlEntry,
)

__all__ = [
    "AppState",
    "MediaKind",
    "OptimisticCounter",
    "PendingWrite",
    "RetryPhase",
    "RetryState",
    "SaveStatus",
    "Session",
    "SignedUrlEntry",
]
