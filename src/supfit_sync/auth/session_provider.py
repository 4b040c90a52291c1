"""Authenticated session access for the sync core."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Protocol

import jwt
import structlog
from jwt import InvalidTokenError as PyJWTInvalidTokenError

from ..domain.models import Session
from ..exceptions import AuthRequiredError

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class SessionProvider(Protocol):
    """Supplies the current identity and bearer credential."""

    async def current(self) -> Session | None:
        """Return the active session or ``None`` when signed out."""

    async def require_user_id(self) -> str:
        """Return the signed-in user id or raise :class:`AuthRequiredError`."""


@dataclass(slots=True)
class TokenSessionProvider:
    """Session provider fed with access tokens by the host auth flow.

    Tokens are decoded with PyJWT. When ``jwt_secret`` is configured the
    signature is verified, otherwise only the claims are read. Expired tokens
    count as signed out.
    """

    jwt_secret: str | None = None
    audience: str | None = "authenticated"
    clock: Callable[[], datetime] = _utcnow
    _token: str | None = field(default=None, repr=False)

    def set_token(self, access_token: str) -> None:
        self._token = access_token

    def clear(self) -> None:
        self._token = None

    async def current(self) -> Session | None:
        token = self._token
        if not token:
            return None
        try:
            claims = self._decode(token)
        except PyJWTInvalidTokenError as exc:
            logger.warning("auth.session.invalid_token", error=str(exc))
            return None

        expires_at = None
        if "exp" in claims:
            expires_at = datetime.fromtimestamp(int(claims["exp"]), tz=timezone.utc)
            if expires_at <= self.clock():
                logger.info("auth.session.expired", expires_at=expires_at.isoformat())
                return None
        user_id = claims.get("sub")
        if not user_id:
            logger.warning("auth.session.missing_subject")
            return None
        return Session(
            user_id=str(user_id),
            access_token=token,
            expires_at=expires_at,
            claims=claims,
        )

    async def require_user_id(self) -> str:
        session = await self.current()
        if session is None:
            raise AuthRequiredError()
        return session.user_id

    def _decode(self, token: str) -> dict[str, Any]:
        if self.jwt_secret:
            options: dict[str, Any] = {"verify_exp": False}
            if self.audience is None:
                options["verify_aud"] = False
            return jwt.decode(
                token,
                self.jwt_secret,
                algorithms=["HS256"],
                audience=self.audience,
                options=options,
            )
        return jwt.decode(
            token,
            options={"verify_signature": False, "verify_exp": False, "verify_aud": False},
        )


__all__ = ["SessionProvider", "TokenSessionProvider"]
