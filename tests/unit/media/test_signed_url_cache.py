from __future__ import annotations

from datetime import timedelta
from typing import Any, Mapping

import pytest

from supfit_sync.media.signed_url_cache import SignedUrlCache
from supfit_sync.sync.cancellation import CancellationToken

pytestmark = pytest.mark.unit

PATH = "workouts/u1_1700.jpg"


class StubFunctions:
    def __init__(self, responses: list[Any]) -> None:
        self.responses = responses
        self.calls: list[tuple[str, dict[str, Any], str | None]] = []

    async def invoke(self, name: str, body: Mapping[str, Any], *, token: str | None = None) -> Any:
        self.calls.append((name, dict(body), token))
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response


class StubSigner:
    def __init__(self, urls: list[Any] | None = None) -> None:
        self.urls = urls or []
        self.calls: list[tuple[str, int]] = []

    async def create_signed_url(self, path: str, *, expires_in: int, token: str | None = None) -> str:
        self.calls.append((path, expires_in))
        url = self.urls.pop(0)
        if isinstance(url, BaseException):
            raise url
        return url


def build_cache(session, clock, functions=None, signer=None, **kwargs: Any) -> SignedUrlCache:
    return SignedUrlCache(
        bucket="user-uploads",
        session=session,
        direct_signer=signer or StubSigner(),
        functions=functions,
        clock=clock,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_cache_hit_skips_network(session, clock) -> None:
    functions = StubFunctions([{"signedUrl": "https://signed/1"}])
    cache = build_cache(session, clock, functions=functions)

    assert await cache.resolve(PATH) == "https://signed/1"
    clock.advance(minutes=4)
    assert await cache.resolve(PATH) == "https://signed/1"
    assert len(functions.calls) == 1
    name, body, token = functions.calls[0]
    assert name == "sign-media-url"
    assert body == {"bucket": "user-uploads", "path": PATH}
    assert token == "token-1"


@pytest.mark.asyncio
async def test_entry_valid_until_grant_minus_margin(session, clock) -> None:
    functions = StubFunctions([{"signedUrl": "https://signed/1"}, {"signedUrl": "https://signed/2"}])
    cache = build_cache(session, clock, functions=functions)
    issued = clock()

    await cache.resolve(PATH)
    entry = cache.peek(PATH)
    assert entry is not None
    assert entry.expires_at == issued + timedelta(minutes=5) - timedelta(seconds=30)

    clock.advance(minutes=4, seconds=29)
    assert await cache.resolve(PATH) == "https://signed/1"
    clock.advance(seconds=1)
    assert await cache.resolve(PATH) == "https://signed/2"
    assert len(cache) == 1


@pytest.mark.asyncio
async def test_function_failure_falls_back_to_direct_signing(session, clock) -> None:
    functions = StubFunctions([RuntimeError("function down")])
    signer = StubSigner(["https://direct/1"])
    cache = build_cache(session, clock, functions=functions, signer=signer)

    assert await cache.resolve(PATH) == "https://direct/1"
    assert signer.calls == [(PATH, 300)]


@pytest.mark.asyncio
async def test_malformed_function_response_falls_back(session, clock) -> None:
    functions = StubFunctions([{"unexpected": True}])
    signer = StubSigner(["https://direct/2"])
    cache = build_cache(session, clock, functions=functions, signer=signer)

    assert await cache.resolve(PATH) == "https://direct/2"


@pytest.mark.asyncio
async def test_both_paths_failing_yields_none_without_caching(session, clock) -> None:
    functions = StubFunctions([RuntimeError("down")])
    signer = StubSigner([RuntimeError("also down")])
    cache = build_cache(session, clock, functions=functions, signer=signer)

    assert await cache.resolve(PATH) is None
    assert cache.peek(PATH) is None


@pytest.mark.asyncio
async def test_disabled_fallback_does_not_sign_directly(session, clock) -> None:
    functions = StubFunctions([RuntimeError("down")])
    signer = StubSigner(["https://direct/unused"])
    cache = build_cache(session, clock, functions=functions, signer=signer, allow_direct_fallback=False)

    assert await cache.resolve(PATH) is None
    assert signer.calls == []


def test_requires_at_least_one_signing_path(session, clock) -> None:
    with pytest.raises(ValueError):
        build_cache(session, clock, functions=None, allow_direct_fallback=False)


@pytest.mark.asyncio
async def test_resolve_url_canonicalizes_before_lookup(session, clock) -> None:
    functions = StubFunctions([{"signed_url": "https://signed/3"}])
    cache = build_cache(session, clock, functions=functions)
    url = f"https://proj.backend.test/storage/v1/object/sign/user-uploads/{PATH}?token=old"

    assert await cache.resolve_url(url) == "https://signed/3"
    assert cache.peek(PATH) is not None
    assert await cache.resolve_url("https://elsewhere.test/a.jpg") is None
    assert await cache.resolve_url(None) is None


@pytest.mark.asyncio
async def test_cancelled_consumer_gets_no_result(session, clock) -> None:
    functions = StubFunctions([{"signedUrl": "https://signed/4"}])
    cache = build_cache(session, clock, functions=functions)
    token = CancellationToken()
    token.cancel()

    assert await cache.resolve(PATH, cancel_token=token) is None
    # The signed URL is still valid for other consumers.
    assert await cache.resolve(PATH) == "https://signed/4"
    assert len(functions.calls) == 1
