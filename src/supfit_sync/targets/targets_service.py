"""Load and save the signed-in user's daily targets."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Mapping, Protocol

import structlog
from pydantic import ValidationError

from ..auth.session_provider import SessionProvider
from ..domain.models import SaveStatus
from ..exceptions import AuthRequiredError, classify_error
from ..infrastructure.kv_store import KeyValueStore
from ..lifecycle import AppLifecycle
from ..sync.write_queue import DEFAULT_COOLDOWN, OfflineWriteQueue, SaveResult
from .targets_schemas import DailyTargets, validate_targets

logger = structlog.get_logger(__name__)


class TargetsStore(Protocol):
    async def upsert(
        self,
        table: str,
        rows: Mapping[str, Any],
        *,
        on_conflict: str,
        token: str | None = None,
    ) -> list[dict[str, Any]]:
        ...

    async def select(
        self,
        table: str,
        *,
        filters: Mapping[str, Any] | None = None,
        columns: str = "*",
        token: str | None = None,
    ) -> list[dict[str, Any]]:
        ...


@dataclass(slots=True)
class LoadedTargets:
    targets: DailyTargets
    source: str  # remote | cache | default


class TargetsService:
    """Daily targets form backed by the ``user_targets`` table.

    Saves go through an :class:`OfflineWriteQueue` keyed per user, so a failed
    save is kept locally and replayed when the app returns to the foreground.
    """

    def __init__(
        self,
        *,
        store: TargetsStore,
        session: SessionProvider,
        kv_store: KeyValueStore,
        table: str = "user_targets",
        cooldown: timedelta = DEFAULT_COOLDOWN,
        clock: Callable[[], datetime] | None = None,
        lifecycle: AppLifecycle | None = None,
    ) -> None:
        self._store = store
        self._session = session
        self._kv_store = kv_store
        self._table = table
        self._cooldown = cooldown
        self._clock = clock
        self._lifecycle = lifecycle
        self._queues: dict[str, OfflineWriteQueue] = {}

    def queue_for(self, owner_id: str) -> OfflineWriteQueue:
        queue = self._queues.get(owner_id)
        if queue is None:
            queue = OfflineWriteQueue(
                form_key=f"targets:{owner_id}",
                send=self._sender(owner_id),
                store=self._kv_store,
                validate=validate_targets,
                cooldown=self._cooldown,
                clock=self._clock,
                lifecycle=self._lifecycle,
            )
            self._queues[owner_id] = queue
        return queue

    async def load(self) -> LoadedTargets:
        """Read targets from the backend, falling back to the last saved copy."""

        owner_id = await self._session.require_user_id()
        session = await self._session.current()
        token = session.access_token if session is not None else None
        queue = self.queue_for(owner_id)
        try:
            rows = await self._store.select(
                self._table,
                filters={"owner_id": owner_id},
                token=token,
            )
        except Exception as exc:
            error = classify_error(exc)
            logger.warning("targets.load.remote_failed", error_kind=error.kind.value)
            cached = await queue.last_saved()
            if cached is None:
                raise error from exc
            return LoadedTargets(targets=self._parse(cached), source="cache")

        if not rows:
            return LoadedTargets(targets=DailyTargets(), source="default")
        return LoadedTargets(targets=self._parse(rows[0]), source="remote")

    async def save(self, payload: Mapping[str, Any]) -> SaveResult:
        """Save the form; failures are queued for replay."""

        session = await self._session.current()
        if session is None:
            return SaveResult(status=SaveStatus.REJECTED, payload=payload, error=AuthRequiredError())
        queue = self.queue_for(session.user_id)
        queue.mark_dirty()
        return await queue.save(payload)

    def close(self) -> None:
        for queue in self._queues.values():
            queue.close()
        self._queues.clear()

    def _sender(self, owner_id: str) -> Callable[[Mapping[str, Any]], Any]:
        async def _send(payload: Mapping[str, Any]) -> None:
            session = await self._session.current()
            if session is None or session.user_id != owner_id:
                raise AuthRequiredError()
            await self._store.upsert(
                self._table,
                {**payload, "owner_id": owner_id},
                on_conflict="owner_id",
                token=session.access_token,
            )

        return _send

    @staticmethod
    def _parse(row: Mapping[str, Any]) -> DailyTargets:
        try:
            return DailyTargets.model_validate(dict(row))
        except ValidationError:
            logger.warning("targets.load.invalid_row")
            return DailyTargets.model_construct(**{
                key: value for key, value in row.items() if key in DailyTargets.model_fields
            })


__all__ = ["LoadedTargets", "TargetsService"]
