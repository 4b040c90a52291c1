"""Domain records shared by the sync components.

The records are plain dataclasses; persistence and wire formats live in the
infrastructure layer. Timestamps are timezone-aware UTC datetimes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping


class MediaKind(str, Enum):
    """Kind of media a canonical storage path points at."""

    IMAGE = "image"
    VIDEO = "video"
    NONE = "none"


class AppState(str, Enum):
    """Foreground/background states reported by the host application."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    BACKGROUND = "background"


class RetryPhase(str, Enum):
    """States of the retry scheduler state machine."""

    IDLE = "idle"
    SCHEDULED = "scheduled"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    EXHAUSTED = "exhausted"


class SaveStatus(str, Enum):
    """Outcome of an offline write queue save."""

    SAVED = "saved"
    THROTTLED = "throttled"
    INVALID = "invalid"
    QUEUED = "queued"
    REJECTED = "rejected"


@dataclass(slots=True, frozen=True)
class SignedUrlEntry:
    """Cached signed URL for a canonical storage path."""

    path: str
    url: str
    expires_at: datetime

    def is_valid(self, *, now: datetime) -> bool:
        return now < self.expires_at


@dataclass(slots=True, frozen=True)
class OptimisticCounter:
    """Likes/comments pair displayed for a coach workout slot."""

    entity_id: str
    likes: int = 0
    comments: int = 0


@dataclass(slots=True)
class RetryState:
    """Mutable backoff bookkeeping owned by a retry scheduler."""

    max_attempts: int
    base_delay_ms: int
    cap_ms: int
    attempt: int = 0
    phase: RetryPhase = RetryPhase.IDLE


@dataclass(slots=True)
class PendingWrite:
    """Snapshot of the last save payload that failed to reach the backend."""

    form_key: str
    payload: Mapping[str, Any]
    attempted_at: datetime
    error_kind: str

    def to_record(self) -> dict[str, Any]:
        return {
            "form_key": self.form_key,
            "payload": dict(self.payload),
            "attempted_at": self.attempted_at.isoformat(),
            "error_kind": self.error_kind,
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "PendingWrite":
        return cls(
            form_key=str(record["form_key"]),
            payload=dict(record.get("payload") or {}),
            attempted_at=datetime.fromisoformat(str(record["attempted_at"])),
            error_kind=str(record.get("error_kind", "unknown")),
        )


@dataclass(slots=True)
class Session:
    """Authenticated identity and bearer credential."""

    user_id: str
    access_token: str
    expires_at: datetime | None = None
    claims: Mapping[str, Any] = field(default_factory=dict)


__all__ = [
    "MediaKind",
    "AppState",
    "RetryPhase",
    "SaveStatus",
    "SignedUrlEntry",
    "OptimisticCounter",
    "RetryState",
    "PendingWrite",
    "Session",
]
