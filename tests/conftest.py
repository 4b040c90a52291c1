from __future__ import annotations

import logging
import os
from datetime import datetime, timezone

import pytest
import structlog

from tests.helpers.stubs import FakeClock, InMemoryKeyValueStore, RecordingRestStore, StubSessionProvider

os.environ.setdefault("SUPFIT_BACKEND_URL", "https://backend.test")
os.environ.setdefault("SUPFIT_ANON_KEY", "anon-test-key")

T0 = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def restore_logging():
    loggers = [logging.getLogger(name) for name in ("", "httpx", "httpcore", "sqlalchemy.engine")]
    levels = [logger.level for logger in loggers]
    yield
    for logger, level in zip(loggers, levels):
        logger.setLevel(level)
    structlog.reset_defaults()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(T0)


@pytest.fixture
def session() -> StubSessionProvider:
    return StubSessionProvider(user_id="user-1", access_token="token-1")


@pytest.fixture
def signed_out() -> StubSessionProvider:
    return StubSessionProvider(user_id=None)


@pytest.fixture
def kv_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def rest_store() -> RecordingRestStore:
    return RecordingRestStore()
