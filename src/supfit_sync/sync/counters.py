"""Optimistic likes/comments counters for coach workout slots."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from typing import Any, Protocol

import structlog

from ..auth.session_provider import SessionProvider
from ..domain.models import OptimisticCounter
from ..exceptions import AuthRequiredError, classify_error

logger = structlog.get_logger(__name__)

CounterMutation = Callable[[OptimisticCounter], OptimisticCounter]
CounterListener = Callable[[OptimisticCounter], Any]


class CounterStore(Protocol):
    """Relational store subset used by the coordinator."""

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


@dataclass(slots=True, frozen=True)
class CounterDelta:
    """Mutation adding ``likes``/``comments`` to a counter, floored at zero."""

    likes: int = 0
    comments: int = 0

    def __call__(self, counter: OptimisticCounter) -> OptimisticCounter:
        return replace(
            counter,
            likes=max(0, counter.likes + self.likes),
            comments=max(0, counter.comments + self.comments),
        )


LIKE = CounterDelta(likes=1)
UNLIKE = CounterDelta(likes=-1)
COMMENT = CounterDelta(comments=1)


class OptimisticMutationCoordinator:
    """Apply counter mutations locally first and persist them with upserts.

    Each mutation computes the full next value from the locally held counter
    and upserts it keyed by ``(owner_id, slot)``, so delivering the same write
    twice is harmless. A failed upsert restores the snapshot taken before the
    mutation. Mutations on one entity are serialized so a like and a comment
    issued together both land.
    """

    def __init__(
        self,
        *,
        store: CounterStore,
        session: SessionProvider,
        table: str = "coach_workouts",
    ) -> None:
        self._store = store
        self._session = session
        self._table = table
        self._counters: dict[str, OptimisticCounter] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._listeners: list[CounterListener] = []

    def subscribe(self, listener: CounterListener) -> Callable[[], None]:
        """Register a listener invoked with every visible counter change."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def get(self, entity_id: str) -> OptimisticCounter:
        return self._counters.get(entity_id) or OptimisticCounter(entity_id=entity_id)

    def snapshot(self) -> dict[str, OptimisticCounter]:
        return dict(self._counters)

    def apply_remote(self, entity_id: str, *, likes: int, comments: int) -> OptimisticCounter:
        """Replace local state with a freshly read remote value."""

        counter = OptimisticCounter(entity_id=entity_id, likes=int(likes), comments=int(comments))
        self._publish(counter)
        return counter

    async def refresh(self) -> list[OptimisticCounter]:
        """Load every counter owned by the signed-in user from the backend."""

        session = await self._session.current()
        if session is None:
            raise AuthRequiredError()
        try:
            rows = await self._store.select(
                self._table,
                filters={"owner_id": session.user_id},
                columns="slot,likes,comments",
                token=session.access_token,
            )
        except Exception as exc:
            error = classify_error(exc)
            logger.warning("sync.counters.refresh_failed", error_kind=error.kind.value)
            raise error from exc
        return [
            self.apply_remote(
                str(row["slot"]),
                likes=row.get("likes") or 0,
                comments=row.get("comments") or 0,
            )
            for row in rows
        ]

    async def apply_and_persist(self, entity_id: str, mutation: CounterMutation) -> OptimisticCounter:
        """Apply ``mutation`` optimistically and persist the resulting value.

        Raises a classified :class:`SyncError` after rolling back when the
        backend write fails. Without a signed-in user nothing is mutated.
        """

        session = await self._session.current()
        if session is None:
            logger.warning("sync.counters.no_session", entity_id=entity_id)
            raise AuthRequiredError()

        async with self._lock_for(entity_id):
            previous = self.get(entity_id)
            speculative = mutation(previous)
            self._publish(speculative)
            try:
                await self._store.upsert(
                    self._table,
                    {
                        "owner_id": session.user_id,
                        "slot": entity_id,
                        "likes": speculative.likes,
                        "comments": speculative.comments,
                    },
                    on_conflict="owner_id,slot",
                    token=session.access_token,
                )
            except Exception as exc:
                error = classify_error(exc)
                self._rollback(entity_id, expected=speculative, previous=previous)
                logger.warning(
                    "sync.counters.rollback",
                    entity_id=entity_id,
                    error_kind=error.kind.value,
                    likes=previous.likes,
                    comments=previous.comments,
                )
                raise error from exc

        logger.info(
            "sync.counters.persisted",
            entity_id=entity_id,
            likes=speculative.likes,
            comments=speculative.comments,
        )
        return speculative

    def _rollback(
        self,
        entity_id: str,
        *,
        expected: OptimisticCounter,
        previous: OptimisticCounter,
    ) -> None:
        # A remote read that landed meanwhile is newer than our snapshot.
        if self._counters.get(entity_id) is not expected:
            return
        self._publish(previous)

    def _lock_for(self, entity_id: str) -> asyncio.Lock:
        lock = self._locks.get(entity_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[entity_id] = lock
        return lock

    def _publish(self, counter: OptimisticCounter) -> None:
        self._counters[counter.entity_id] = counter
        for listener in list(self._listeners):
            listener(counter)


__all__ = [
    "COMMENT",
    "LIKE",
    "UNLIKE",
    "CounterDelta",
    "CounterMutation",
    "CounterStore",
    "OptimisticMutationCoordinator",
]
