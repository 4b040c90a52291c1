from __future__ import annotations

import asyncio
from typing import Any, Mapping

import httpx
import pytest

from supfit_sync.domain.models import AppState, SaveStatus
from supfit_sync.exceptions import BackendError, ErrorKind, ValidationFailedError
from supfit_sync.lifecycle import AppLifecycle
from supfit_sync.sync.write_queue import OfflineWriteQueue
from tests.helpers.stubs import InMemoryKeyValueStore

pytestmark = pytest.mark.unit


class Sender:
    def __init__(self, store) -> None:
        self.store = store
        self.sent: list[dict[str, Any]] = []
        self.failures: list[BaseException] = []

    async def __call__(self, payload: Mapping[str, Any]) -> None:
        self.sent.append(dict(payload))
        if self.failures:
            raise self.failures.pop(0)
        await self.store.upsert("user_targets", {**payload, "owner_id": "user-1"}, on_conflict="owner_id")


def require_steps(payload: Mapping[str, Any]) -> Mapping[str, Any]:
    if int(payload.get("steps", 0)) < 1_000:
        raise ValidationFailedError(errors=["Steps must be between 1000 and 20000"])
    return payload


def build(sender, kv_store, clock, **kwargs: Any) -> OfflineWriteQueue:
    return OfflineWriteQueue(
        form_key="targets:user-1",
        send=sender,
        store=kv_store,
        validate=require_steps,
        clock=clock,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_successful_save_updates_local_cache(rest_store, kv_store, clock) -> None:
    sender = Sender(rest_store)
    queue = build(sender, kv_store, clock)
    queue.mark_dirty()

    result = await queue.save({"steps": 9_000})

    assert result.status is SaveStatus.SAVED
    assert result.ok
    assert await queue.last_saved() == {"steps": 9_000}
    assert await queue.pending() is None
    assert not queue.has_unsaved_changes


@pytest.mark.asyncio
async def test_second_save_inside_cooldown_is_throttled(rest_store, kv_store, clock) -> None:
    sender = Sender(rest_store)
    queue = build(sender, kv_store, clock)

    first = await queue.save({"steps": 9_000})
    clock.advance(milliseconds=200)
    second = await queue.save({"steps": 9_500})

    assert first.status is SaveStatus.SAVED
    assert second.status is SaveStatus.THROTTLED
    assert len(sender.sent) == 1

    clock.advance(milliseconds=800)
    third = await queue.save({"steps": 9_500})
    assert third.status is SaveStatus.SAVED
    assert len(sender.sent) == 2


@pytest.mark.asyncio
async def test_invalid_payload_never_reaches_network(rest_store, kv_store, clock) -> None:
    sender = Sender(rest_store)
    queue = build(sender, kv_store, clock)

    result = await queue.save({"steps": 10})

    assert result.status is SaveStatus.INVALID
    assert result.error is not None
    assert result.error.errors == ["Steps must be between 1000 and 20000"]
    assert sender.sent == []
    assert await queue.pending() is None


@pytest.mark.asyncio
async def test_network_failure_queues_payload(rest_store, kv_store, clock) -> None:
    sender = Sender(rest_store)
    sender.failures.append(httpx.ConnectError("offline"))
    queue = build(sender, kv_store, clock)
    queue.mark_dirty()

    result = await queue.save({"steps": 9_000})

    assert result.status is SaveStatus.QUEUED
    assert result.retryable
    pending = await queue.pending()
    assert pending is not None
    assert pending.payload == {"steps": 9_000}
    assert pending.attempted_at == clock()
    assert pending.error_kind == ErrorKind.NETWORK.value
    assert queue.has_unsaved_changes
    assert await queue.last_saved() is None


@pytest.mark.asyncio
async def test_later_failure_replaces_pending_write(rest_store, kv_store, clock) -> None:
    sender = Sender(rest_store)
    sender.failures.extend([httpx.ConnectError("offline"), httpx.ConnectError("offline")])
    queue = build(sender, kv_store, clock)

    await queue.save({"steps": 9_000})
    clock.advance(seconds=2)
    await queue.save({"steps": 12_000})

    assert await kv_store.keys("targets:user-1") == ["targets:user-1:pending"]
    pending = await queue.pending()
    assert pending is not None
    assert pending.payload == {"steps": 12_000}


@pytest.mark.asyncio
async def test_auth_failure_is_rejected_not_queued(rest_store, kv_store, clock) -> None:
    sender = Sender(rest_store)
    sender.failures.append(BackendError("JWT expired", status_code=401))
    queue = build(sender, kv_store, clock)

    result = await queue.save({"steps": 9_000})

    assert result.status is SaveStatus.REJECTED
    assert result.error is not None
    assert result.error.kind is ErrorKind.AUTH
    assert await queue.pending() is None


@pytest.mark.asyncio
async def test_replay_after_foreground_transition(rest_store, kv_store, clock) -> None:
    lifecycle = AppLifecycle()
    sender = Sender(rest_store)
    sender.failures.append(httpx.ConnectError("offline"))
    queue = build(sender, kv_store, clock, lifecycle=lifecycle)
    queue.mark_dirty()
    await queue.save({"steps": 9_000})

    await lifecycle.transition(AppState.BACKGROUND)
    clock.advance(minutes=5)
    await lifecycle.transition(AppState.ACTIVE)

    assert len(sender.sent) == 2
    assert await queue.pending() is None
    assert await queue.last_saved() == {"steps": 9_000}
    assert not queue.has_unsaved_changes

    await lifecycle.transition(AppState.INACTIVE)
    await lifecycle.transition(AppState.ACTIVE)
    assert len(sender.sent) == 2


@pytest.mark.asyncio
async def test_clean_form_does_not_replay(rest_store, kv_store, clock) -> None:
    lifecycle = AppLifecycle()
    sender = Sender(rest_store)
    sender.failures.append(httpx.ConnectError("offline"))
    queue = build(sender, kv_store, clock, lifecycle=lifecycle)
    await queue.save({"steps": 9_000})
    queue.mark_clean()

    await lifecycle.transition(AppState.BACKGROUND)
    await lifecycle.transition(AppState.ACTIVE)

    assert len(sender.sent) == 1
    assert await queue.pending() is not None


@pytest.mark.asyncio
async def test_closed_queue_ignores_lifecycle(rest_store, kv_store, clock) -> None:
    lifecycle = AppLifecycle()
    sender = Sender(rest_store)
    sender.failures.append(httpx.ConnectError("offline"))
    queue = build(sender, kv_store, clock, lifecycle=lifecycle)
    queue.mark_dirty()
    await queue.save({"steps": 9_000})
    queue.close()

    await lifecycle.transition(AppState.BACKGROUND)
    await lifecycle.transition(AppState.ACTIVE)

    assert len(sender.sent) == 1


@pytest.mark.asyncio
async def test_replaying_twice_matches_replaying_once(rest_store, kv_store, clock) -> None:
    sender = Sender(rest_store)
    sender.failures.append(httpx.ConnectError("offline"))
    queue = build(sender, kv_store, clock)
    await queue.save({"steps": 9_000})
    record = await kv_store.get(queue.pending_key)

    await queue.replay_pending()
    state_after_once = dict(rest_store.tables["user_targets"])
    await kv_store.set(queue.pending_key, record)
    await queue.replay_pending()

    assert rest_store.tables["user_targets"] == state_after_once
    assert await queue.replay_pending() is None


@pytest.mark.asyncio
async def test_corrupt_pending_record_is_dropped(rest_store, kv_store, clock) -> None:
    queue = build(Sender(rest_store), kv_store, clock)
    await kv_store.set(queue.pending_key, {"payload": {}})

    assert await queue.pending() is None
    assert await kv_store.get(queue.pending_key) is None


def test_rejects_empty_form_key(kv_store) -> None:
    async def send(payload: Mapping[str, Any]) -> None:
        return None

    with pytest.raises(ValueError):
        OfflineWriteQueue(form_key="", send=send, store=kv_store)


@pytest.mark.asyncio
async def test_on_foreground_requires_unsaved_changes(rest_store, kv_store, clock) -> None:
    sender = Sender(rest_store)
    sender.failures.append(httpx.ConnectError("offline"))
    queue = build(sender, kv_store, clock)
    await queue.save({"steps": 9_000})

    assert await queue.on_foreground() is None

    queue.mark_dirty()
    result = await queue.on_foreground()

    assert result is not None
    assert result.status is SaveStatus.SAVED
    await queue.discard_pending()
    assert await queue.pending() is None


class YieldingKeyValueStore(InMemoryKeyValueStore):
    """Suspends on reads like the thread-backed SQLite store."""

    async def get(self, key: str) -> Any | None:
        await asyncio.sleep(0)
        return await super().get(key)


@pytest.mark.asyncio
async def test_overlapping_foreground_replays_send_once(rest_store, clock) -> None:
    kv_store = YieldingKeyValueStore()
    sender = Sender(rest_store)
    sender.failures.append(httpx.ConnectError("offline"))
    queue = build(sender, kv_store, clock)
    queue.mark_dirty()
    await queue.save({"steps": 9_000})

    results = await asyncio.gather(queue.on_foreground(), queue.on_foreground())

    assert len(sender.sent) == 2
    assert sorted(result is None for result in results) == [False, True]
    assert await queue.pending() is None
