"""Application-scoped state shared between screens."""

from __future__ import annotations

from enum import Enum
from typing import Any

import structlog

from .exceptions import ValidationFailedError

logger = structlog.get_logger(__name__)


class UserRole(str, Enum):
    INDIVIDUAL = "individual"
    COACH = "coach"


class AppContext:
    """Holds selections made before sign-up, such as the user's role.

    One instance is owned by the service container and passed to whoever
    needs it instead of stashing the value on a global.
    """

    def __init__(self, default_role: UserRole = UserRole.INDIVIDUAL) -> None:
        self._default_role = default_role
        self._role: UserRole | None = None

    @property
    def selected_role(self) -> UserRole | None:
        return self._role

    def select_role(self, role: UserRole | str) -> UserRole:
        try:
            selected = UserRole(role)
        except ValueError as exc:
            raise ValidationFailedError(errors=[f"Unknown role: {role}"]) from exc
        self._role = selected
        logger.info("context.role_selected", role=selected.value)
        return selected

    def require_role(self) -> UserRole:
        """Return the selected role, or the default when none was picked."""

        if self._role is None:
            logger.debug("context.role_defaulted", role=self._default_role.value)
            return self._default_role
        return self._role

    def signup_metadata(self) -> dict[str, Any]:
        """User metadata attached to a sign-up request."""

        return {"role": self.require_role().value, "role_source": "user_selection"}

    def reset(self) -> None:
        self._role = None


__all__ = ["AppContext", "UserRole"]
