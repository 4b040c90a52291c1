"""Error hierarchy and failure classification for the sync core.

Every failure that leaves the write queue or the counter coordinator is a
:class:`SyncError` carrying one of the :class:`ErrorKind` buckets, so callers
never see a raw backend or transport error.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Sequence

import httpx
from jwt import PyJWTError
from pydantic import ValidationError
from sqlalchemy import exc as sa_exc

__all__ = [
    "AppError",
    "BackendError",
    "LocalStoreError",
    "ErrorKind",
    "SyncError",
    "NetworkError",
    "AuthRequiredError",
    "ValidationFailedError",
    "ConflictError",
    "UnknownSyncError",
    "classify_error",
    "handle_sqlalchemy_errors",
]


class AppError(Exception):
    """Base class for sync core errors."""


class BackendError(AppError):
    """Raised by backend clients for non-2xx responses."""

    def __init__(self, message: str, *, status_code: int | None = None, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"BackendError(status_code={self.status_code!r}, code={self.code!r}, message={self.message!r})"


class LocalStoreError(AppError):
    """Raised when the durable local key-value store fails."""


class ErrorKind(str, Enum):
    """Buckets used to decide how a failure is presented and retried."""

    NETWORK = "network"
    AUTH = "auth"
    VALIDATION = "validation"
    CONFLICT = "conflict"
    UNKNOWN = "unknown"


class SyncError(AppError):
    """Classified failure surfaced to the screen layer."""

    kind: ErrorKind = ErrorKind.UNKNOWN
    retryable: bool = True
    default_message: str = "Something went wrong. Please try again."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NetworkError(SyncError):
    kind = ErrorKind.NETWORK
    retryable = True
    default_message = "Connection error. Please check your internet and try again."


class AuthRequiredError(SyncError):
    kind = ErrorKind.AUTH
    retryable = False
    default_message = "Your session expired. Please log in again."


class ValidationFailedError(SyncError):
    kind = ErrorKind.VALIDATION
    retryable = False
    default_message = "Invalid values. Please check your input."

    def __init__(self, message: str | None = None, *, errors: Sequence[str] = ()) -> None:
        self.errors = list(errors)
        if message is None and self.errors:
            message = "; ".join(self.errors)
        super().__init__(message)


class ConflictError(SyncError):
    """Unique-constraint violation on a write that should have been an upsert."""

    kind = ErrorKind.CONFLICT
    retryable = True
    default_message = "The record changed on the server. Please try again."


class UnknownSyncError(SyncError):
    kind = ErrorKind.UNKNOWN
    retryable = True


_NETWORK_MARKERS = ("network", "econnrefused", "fetch", "timed out", "timeout", "connection")
_AUTH_MARKERS = ("auth", "unauthorized", "jwt expired", "not authenticated")
_VALIDATION_CODES = {"23514", "22P02", "23502"}
_CONFLICT_CODES = {"23505"}


def classify_error(exc: BaseException) -> SyncError:
    """Map an arbitrary failure to its :class:`SyncError` bucket."""

    if isinstance(exc, SyncError):
        return exc
    if isinstance(exc, (httpx.TransportError, ConnectionError, TimeoutError)):
        return NetworkError()
    if isinstance(exc, PyJWTError):
        return AuthRequiredError()
    if isinstance(exc, ValidationError):
        return ValidationFailedError(
            errors=[str(error.get("msg", "invalid value")) for error in exc.errors()]
        )
    if isinstance(exc, BackendError):
        return _classify_backend_error(exc)
    if isinstance(exc, OSError):
        return NetworkError()
    return _classify_message(str(exc))


def _classify_backend_error(exc: BackendError) -> SyncError:
    status = exc.status_code
    if exc.code in _CONFLICT_CODES or status == 409:
        return ConflictError()
    if exc.code in _VALIDATION_CODES or status in (400, 422):
        return ValidationFailedError()
    if status in (401, 403):
        return AuthRequiredError()
    if status is not None and (status == 429 or status >= 500):
        return NetworkError()
    return _classify_message(exc.message)


def _classify_message(message: str) -> SyncError:
    lowered = message.lower()
    if any(marker in lowered for marker in _NETWORK_MARKERS):
        return NetworkError()
    if any(marker in lowered for marker in _AUTH_MARKERS):
        return AuthRequiredError()
    if "check constraint" in lowered:
        return ValidationFailedError()
    if "duplicate key" in lowered:
        return ConflictError()
    return UnknownSyncError()


@dataclass(slots=True)
class _StoreContext:
    """Internal helper describing the store operation for error messages."""

    operation: str | None = None

    def format(self, message: str) -> str:
        if self.operation:
            return f"{self.operation}: {message}"
        return message


@contextmanager
def handle_sqlalchemy_errors(*, operation: str | None = None) -> Iterator[None]:
    """Translate SQLAlchemy errors raised by the local store."""

    context = _StoreContext(operation)
    try:
        yield
    except sa_exc.SQLAlchemyError as exc:
        raise LocalStoreError(context.format("local store operation failed")) from exc
