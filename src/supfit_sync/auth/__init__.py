"""Session access."""

from .session_provider import SessionProvider, TokenSessionProvider

__all__ = ["SessionProvider", "TokenSessionProvider"]
