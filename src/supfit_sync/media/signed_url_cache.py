"""Read-through cache of signed URLs for private media."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Protocol

import structlog

from ..auth.session_provider import SessionProvider
from ..domain.models import SignedUrlEntry
from ..domain.timing import calculate_signed_url_expiry
from ..infrastructure.functions_client import extract_signed_url
from ..sync.cancellation import CancellationToken
from .media_paths import canonicalize

logger = structlog.get_logger(__name__)

SIGNED_URL_GRANT = timedelta(minutes=5)
SIGNED_URL_SAFETY_MARGIN = timedelta(seconds=30)


def _default_clock() -> datetime:
    return datetime.now(timezone.utc)


class SigningFunction(Protocol):
    async def invoke(self, name: str, body: Mapping[str, Any], *, token: str | None = None) -> Any:
        ...


class DirectSigner(Protocol):
    async def create_signed_url(self, path: str, *, expires_in: int, token: str | None = None) -> str:
        ...


class SignedUrlCache:
    """Resolve canonical paths to signed URLs, caching them below their grant.

    Resolution asks the signing function first and falls back to signing
    directly against the bucket. Entries live for ``grant - safety_margin``
    and are replaced on refresh, never evicted; the working set is the media
    of the screens visited in one session.
    """

    def __init__(
        self,
        *,
        bucket: str,
        session: SessionProvider,
        direct_signer: DirectSigner,
        functions: SigningFunction | None = None,
        function_name: str | None = "sign-media-url",
        allow_direct_fallback: bool = True,
        grant: timedelta = SIGNED_URL_GRANT,
        safety_margin: timedelta = SIGNED_URL_SAFETY_MARGIN,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if not (functions is not None and function_name) and not allow_direct_fallback:
            raise ValueError("either a signing function or direct fallback must be enabled")
        calculate_signed_url_expiry(_default_clock(), grant=grant, safety_margin=safety_margin)
        self._bucket = bucket
        self._session = session
        self._direct_signer = direct_signer
        self._functions = functions
        self._function_name = function_name
        self._allow_direct_fallback = allow_direct_fallback
        self._grant = grant
        self._safety_margin = safety_margin
        self._clock = clock or _default_clock
        self._entries: dict[str, SignedUrlEntry] = {}

    @property
    def bucket(self) -> str:
        return self._bucket

    def __len__(self) -> int:
        return len(self._entries)

    def peek(self, path: str) -> SignedUrlEntry | None:
        return self._entries.get(path)

    async def resolve_url(
        self,
        url: str | None,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> str | None:
        """Canonicalize ``url`` and resolve it; unresolvable input yields ``None``."""

        path = canonicalize(url, bucket=self._bucket)
        if not path:
            if url:
                logger.debug("media.sign.unresolvable", url=url)
            return None
        return await self.resolve(path, cancel_token=cancel_token)

    async def resolve(
        self,
        path: str,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> str | None:
        """Return a signed URL for ``path`` or ``None`` when signing failed."""

        entry = self._entries.get(path)
        if entry is not None and entry.is_valid(now=self._clock()):
            return entry.url

        session = await self._session.current()
        token = session.access_token if session is not None else None

        url = await self._sign_with_function(path, token)
        if url is None and self._allow_direct_fallback:
            url = await self._sign_directly(path, token)
        if url is None:
            logger.warning("media.sign.unavailable", path=path)
            return None

        issued_at = self._clock()
        self._entries[path] = SignedUrlEntry(
            path=path,
            url=url,
            expires_at=calculate_signed_url_expiry(
                issued_at,
                grant=self._grant,
                safety_margin=self._safety_margin,
            ),
        )
        if cancel_token is not None and cancel_token.cancelled:
            logger.debug("media.sign.result_discarded", path=path)
            return None
        return url

    async def _sign_with_function(self, path: str, token: str | None) -> str | None:
        if self._functions is None or not self._function_name:
            return None
        try:
            body = await self._functions.invoke(
                self._function_name,
                {"bucket": self._bucket, "path": path},
                token=token,
            )
        except Exception as exc:
            logger.info("media.sign.function_failed", path=path, error=str(exc))
            return None
        url = extract_signed_url(body)
        if url is None:
            logger.info("media.sign.function_malformed", path=path)
        return url

    async def _sign_directly(self, path: str, token: str | None) -> str | None:
        try:
            url = await self._direct_signer.create_signed_url(
                path,
                expires_in=int(self._grant.total_seconds()),
                token=token,
            )
        except Exception as exc:
            logger.info("media.sign.direct_failed", path=path, error=str(exc))
            return None
        logger.info("media.sign.fallback", path=path)
        return url or None


__all__ = [
    "SIGNED_URL_GRANT",
    "SIGNED_URL_SAFETY_MARGIN",
    "DirectSigner",
    "SignedUrlCache",
    "SigningFunction",
]
