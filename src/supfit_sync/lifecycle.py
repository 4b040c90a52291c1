"""Foreground/background lifecycle signal consumed by the sync core."""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from .domain.models import AppState

logger = structlog.get_logger(__name__)

LifecycleListener = Callable[[AppState, AppState], Awaitable[None] | None]


class AppLifecycle:
    """Fans app state transitions out to subscribed components.

    The host application calls :meth:`transition` whenever the platform
    reports a new state. Listeners run sequentially; a failing listener is
    logged and does not prevent the others from running.
    """

    def __init__(self, initial: AppState = AppState.ACTIVE) -> None:
        self._state = initial
        self._listeners: list[LifecycleListener] = []

    @property
    def state(self) -> AppState:
        return self._state

    def subscribe(self, listener: LifecycleListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def transition(self, state: AppState) -> None:
        previous = self._state
        if state == previous:
            return
        self._state = state
        logger.info("lifecycle.transition", previous=previous.value, current=state.value)
        for listener in list(self._listeners):
            try:
                result: Any = listener(previous, state)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("lifecycle.listener_failed", current=state.value)


def is_foreground_transition(previous: AppState, current: AppState) -> bool:
    """Return ``True`` for background/inactive → active transitions."""

    return previous is not AppState.ACTIVE and current is AppState.ACTIVE


__all__ = ["AppLifecycle", "LifecycleListener", "is_foreground_transition"]
