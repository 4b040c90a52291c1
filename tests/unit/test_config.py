from __future__ import annotations

from datetime import timedelta

import pytest
from pydantic import ValidationError

from supfit_sync.config import SyncConfig

pytestmark = pytest.mark.unit


def test_defaults_match_client_policy(monkeypatch) -> None:
    monkeypatch.delenv("SUPFIT_BACKEND_URL", raising=False)
    config = SyncConfig()

    assert config.signed_url_grant == timedelta(minutes=5)
    assert config.signed_url_safety_margin == timedelta(seconds=30)
    assert config.save_cooldown == timedelta(seconds=1)
    assert (config.retry_base_delay_ms, config.retry_cap_ms, config.retry_max_attempts) == (1500, 30000, 4)
    assert config.media_bucket == "user-uploads"
    assert config.allow_direct_sign_fallback is True


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("SUPFIT_BACKEND_URL", "https://prod.backend.test")
    monkeypatch.setenv("SUPFIT_ALLOW_DIRECT_SIGN_FALLBACK", "false")
    monkeypatch.setenv("SUPFIT_SAVE_COOLDOWN_MS", "250")

    config = SyncConfig.build_default()

    assert config.backend_url == "https://prod.backend.test"
    assert config.allow_direct_sign_fallback is False
    assert config.save_cooldown == timedelta(milliseconds=250)


def test_margin_must_be_below_grant() -> None:
    with pytest.raises(ValidationError):
        SyncConfig(signed_url_grant_seconds=30, signed_url_safety_margin_seconds=30)


def test_cap_must_not_be_below_base() -> None:
    with pytest.raises(ValidationError):
        SyncConfig(retry_base_delay_ms=2_000, retry_cap_ms=1_000)
