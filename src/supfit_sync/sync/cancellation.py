"""Cancellation tokens owned by consuming views."""

from __future__ import annotations

import logging
from typing import Callable

logger = logging.getLogger(__name__)


class CancellationToken:
    """Signals that the consumer of an asynchronous result went away.

    A view creates one token for its lifetime and cancels it on teardown.
    Components holding timers register callbacks to disarm them; components
    awaiting network results check :attr:`cancelled` before applying them.
    In-flight requests themselves are not aborted.
    """

    __slots__ = ("_cancelled", "_callbacks")

    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:  # pragma: no cover - callbacks must not break teardown
                logger.exception("cancellation.callback_failed")

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register ``callback``; returns a function removing it again."""

        if self._cancelled:
            callback()
            return lambda: None
        self._callbacks.append(callback)

        def _remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return _remove


__all__ = ["CancellationToken"]
