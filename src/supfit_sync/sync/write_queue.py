"""Rate-limited form saves with a durable single-slot pending queue."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog
from pydantic import ValidationError

from ..domain.models import AppState, PendingWrite, SaveStatus
from ..domain.timing import is_within_cooldown
from ..exceptions import (
    ErrorKind,
    LocalStoreError,
    SyncError,
    ValidationFailedError,
    classify_error,
)
from ..infrastructure.kv_store import KeyValueStore
from ..lifecycle import AppLifecycle, is_foreground_transition

logger = structlog.get_logger(__name__)

SendFunction = Callable[[Mapping[str, Any]], Awaitable[Any]]
Validator = Callable[[Mapping[str, Any]], Mapping[str, Any]]

DEFAULT_COOLDOWN = timedelta(milliseconds=1_000)


def _default_clock() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class SaveResult:
    """Outcome of :meth:`OfflineWriteQueue.save`."""

    status: SaveStatus
    payload: Mapping[str, Any] | None = None
    error: SyncError | None = None

    @property
    def ok(self) -> bool:
        return self.status is SaveStatus.SAVED

    @property
    def retryable(self) -> bool:
        return self.error is not None and self.error.retryable


class OfflineWriteQueue:
    """Save one logical form, keeping the last failed payload for replay.

    The queue holds at most one pending write per form. It is stored under
    ``<form_key>:pending`` in the local store and replaced on every failure,
    so replays never accumulate duplicates. Successful payloads are kept
    under ``<form_key>:saved`` for fast reloads.
    """

    def __init__(
        self,
        *,
        form_key: str,
        send: SendFunction,
        store: KeyValueStore,
        validate: Validator | None = None,
        cooldown: timedelta = DEFAULT_COOLDOWN,
        clock: Callable[[], datetime] | None = None,
        lifecycle: AppLifecycle | None = None,
    ) -> None:
        if not form_key:
            raise ValueError("form_key must not be empty")
        if cooldown < timedelta(0):
            raise ValueError("cooldown cannot be negative")
        self._form_key = form_key
        self._send_fn = send
        self._store = store
        self._validate = validate
        self._cooldown = cooldown
        self._clock = clock or _default_clock
        self._last_attempt_at: datetime | None = None
        self._dirty = False
        self._replaying = False
        self._unsubscribe: Callable[[], None] | None = None
        if lifecycle is not None:
            self._unsubscribe = lifecycle.subscribe(self._handle_transition)

    @property
    def form_key(self) -> str:
        return self._form_key

    @property
    def pending_key(self) -> str:
        return f"{self._form_key}:pending"

    @property
    def saved_key(self) -> str:
        return f"{self._form_key}:saved"

    @property
    def has_unsaved_changes(self) -> bool:
        return self._dirty

    def mark_dirty(self) -> None:
        self._dirty = True

    def mark_clean(self) -> None:
        self._dirty = False

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def save(self, payload: Mapping[str, Any]) -> SaveResult:
        """Validate and send ``payload``; queue it locally when sending fails."""

        now = self._clock()
        if is_within_cooldown(self._last_attempt_at, now=now, cooldown=self._cooldown):
            logger.info("sync.queue.throttled", form=self._form_key)
            return SaveResult(status=SaveStatus.THROTTLED)
        self._last_attempt_at = now

        try:
            validated = self._validate(payload) if self._validate is not None else dict(payload)
        except (ValidationError, ValidationFailedError, ValueError) as exc:
            error = _as_validation_error(exc)
            logger.info("sync.queue.invalid", form=self._form_key, errors=error.errors)
            return SaveResult(status=SaveStatus.INVALID, payload=payload, error=error)

        return await self._send(dict(validated), attempted_at=now)

    async def replay_pending(self) -> SaveResult | None:
        """Send the queued payload once; ``None`` when nothing is queued."""

        if self._replaying:
            return None
        self._replaying = True
        try:
            pending = await self.pending()
            if pending is None:
                return None
            now = self._clock()
            self._last_attempt_at = now
            logger.info("sync.queue.replay", form=self._form_key, error_kind=pending.error_kind)
            return await self._send(dict(pending.payload), attempted_at=now)
        finally:
            self._replaying = False

    async def pending(self) -> PendingWrite | None:
        record = await self._store.get(self.pending_key)
        if record is None:
            return None
        try:
            return PendingWrite.from_record(record)
        except (KeyError, TypeError, ValueError):
            logger.warning("sync.queue.corrupt_pending", form=self._form_key)
            await self._store.delete(self.pending_key)
            return None

    async def last_saved(self) -> Mapping[str, Any] | None:
        record = await self._store.get(self.saved_key)
        return record if isinstance(record, Mapping) else None

    async def discard_pending(self) -> None:
        await self._store.delete(self.pending_key)

    async def on_foreground(self) -> SaveResult | None:
        """Replay the queued payload if the form still has unsaved changes."""

        if not self._dirty:
            return None
        return await self.replay_pending()

    async def _handle_transition(self, previous: AppState, current: AppState) -> None:
        if is_foreground_transition(previous, current):
            await self.on_foreground()

    async def _send(self, payload: dict[str, Any], *, attempted_at: datetime) -> SaveResult:
        try:
            await self._send_fn(payload)
        except Exception as exc:
            error = classify_error(exc)
            if error.kind is ErrorKind.AUTH:
                logger.warning("sync.queue.auth_required", form=self._form_key)
                return SaveResult(status=SaveStatus.REJECTED, payload=payload, error=error)
            await self._queue(payload, attempted_at=attempted_at, error=error)
            return SaveResult(status=SaveStatus.QUEUED, payload=payload, error=error)

        try:
            await self._store.set(self.saved_key, payload)
            await self._store.delete(self.pending_key)
        except LocalStoreError:
            logger.exception("sync.queue.local_cache_failed", form=self._form_key)
        self._dirty = False
        logger.info("sync.queue.saved", form=self._form_key)
        return SaveResult(status=SaveStatus.SAVED, payload=payload)

    async def _queue(self, payload: dict[str, Any], *, attempted_at: datetime, error: SyncError) -> None:
        pending = PendingWrite(
            form_key=self._form_key,
            payload=payload,
            attempted_at=attempted_at,
            error_kind=error.kind.value,
        )
        try:
            await self._store.set(self.pending_key, pending.to_record())
        except LocalStoreError:
            logger.exception("sync.queue.persist_failed", form=self._form_key)
            return
        logger.warning(
            "sync.queue.pending",
            form=self._form_key,
            error_kind=error.kind.value,
            retryable=error.retryable,
        )


def _as_validation_error(exc: Exception) -> ValidationFailedError:
    if isinstance(exc, ValidationFailedError):
        return exc
    if isinstance(exc, ValidationError):
        return ValidationFailedError(
            errors=[str(item.get("msg", "invalid value")) for item in exc.errors()]
        )
    return ValidationFailedError(errors=[str(exc)])


__all__ = ["DEFAULT_COOLDOWN", "OfflineWriteQueue", "SaveResult"]
