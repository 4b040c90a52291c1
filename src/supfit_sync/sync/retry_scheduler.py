"""Capped exponential backoff for idempotent list refreshes."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import Any, Generic, TypeVar

import structlog

from ..domain.models import RetryPhase, RetryState
from ..domain.timing import calculate_backoff_delay_ms
from ..exceptions import SyncError, classify_error
from .cancellation import CancellationToken

T = TypeVar("T")

logger = structlog.get_logger(__name__)

DEFAULT_BASE_DELAY_MS = 1_500
DEFAULT_CAP_MS = 30_000
DEFAULT_MAX_ATTEMPTS = 4


class RetryScheduler(Generic[T]):
    """Runs one logical operation and re-arms it after failures.

    Failure ``n`` (zero-based) schedules the next run after
    ``min(cap, base * 2**n)`` milliseconds until ``max_attempts`` retries
    were spent; the following failure moves the scheduler to ``EXHAUSTED``
    and emits ``on_exhausted`` once. Only :meth:`manual_reset` leaves that
    state. At most one timer is armed at any time.
    """

    def __init__(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        name: str = "refresh",
        base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
        cap_ms: int = DEFAULT_CAP_MS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        on_success: Callable[[T], Any] | None = None,
        on_exhausted: Callable[[SyncError], Any] | None = None,
        cancel_token: CancellationToken | None = None,
        sleep: Callable[[float], Any] | None = None,
    ) -> None:
        if max_attempts < 0:
            raise ValueError("max_attempts cannot be negative")
        calculate_backoff_delay_ms(0, base_delay_ms=base_delay_ms, cap_ms=cap_ms)
        self._operation = operation
        self._name = name
        self._state = RetryState(
            max_attempts=max_attempts,
            base_delay_ms=base_delay_ms,
            cap_ms=cap_ms,
        )
        self._on_success = on_success
        self._on_exhausted = on_exhausted
        self._cancel_token = cancel_token
        self._sleep = self._wrap_sleep(sleep)
        self._timer: asyncio.Task[None] | None = None
        self._last_error: SyncError | None = None
        if cancel_token is not None:
            cancel_token.add_callback(self._cancel_timer)

    @staticmethod
    def _wrap_sleep(
        sleep: Callable[[float], Any] | None,
    ) -> Callable[[float], Awaitable[None]]:
        if sleep is None:
            return asyncio.sleep

        async def _async_sleep(seconds: float) -> None:
            result = sleep(seconds)
            if inspect.isawaitable(result):
                await result

        return _async_sleep

    @property
    def state(self) -> RetryState:
        return replace(self._state)

    @property
    def phase(self) -> RetryPhase:
        return self._state.phase

    @property
    def attempt(self) -> int:
        return self._state.attempt

    @property
    def last_error(self) -> SyncError | None:
        return self._last_error

    @property
    def timer_armed(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def active(self) -> bool:
        return self._cancel_token is None or not self._cancel_token.cancelled

    async def start(self) -> None:
        """Run the operation now unless a run or retry is already underway."""

        if self._state.phase in (RetryPhase.RUNNING, RetryPhase.SCHEDULED):
            return
        if self._state.phase is RetryPhase.EXHAUSTED:
            logger.info("sync.retry.start_ignored", operation=self._name, reason="exhausted")
            return
        await self._run()

    async def manual_reset(self) -> None:
        """Drop any pending retry, reset the attempt counter and run immediately."""

        if self._state.phase is RetryPhase.RUNNING:
            logger.info("sync.retry.reset_ignored", operation=self._name, reason="running")
            return
        self._cancel_timer()
        self._state.attempt = 0
        logger.info("sync.retry.manual_reset", operation=self._name)
        await self._run()

    def cancel(self) -> None:
        """Disarm the pending timer without touching the attempt counter."""

        self._cancel_timer()

    async def join(self) -> None:
        """Wait until no retry timer is pending."""

        while self._timer is not None:
            timer = self._timer
            try:
                await timer
            except asyncio.CancelledError:
                if not timer.cancelled():
                    raise
            if self._timer is timer:
                self._timer = None

    async def _run(self) -> None:
        if not self.active:
            return
        self._state.phase = RetryPhase.RUNNING
        try:
            result = await self._operation()
        except asyncio.CancelledError:
            self._state.phase = RetryPhase.IDLE
            raise
        except Exception as exc:
            if not self.active:
                self._discard_result()
                return
            self._handle_failure(classify_error(exc))
            return

        if not self.active:
            self._discard_result()
            return
        self._cancel_timer()
        self._state.attempt = 0
        self._state.phase = RetryPhase.SUCCEEDED
        self._last_error = None
        if self._on_success is not None:
            self._on_success(result)

    def _discard_result(self) -> None:
        # Consumer went away mid-run; RUNNING must not outlive the operation.
        self._state.phase = RetryPhase.IDLE
        logger.debug("sync.retry.result_discarded", operation=self._name)

    def _handle_failure(self, error: SyncError) -> None:
        self._last_error = error
        self._state.phase = RetryPhase.FAILED
        if self._state.attempt >= self._state.max_attempts:
            self._cancel_timer()
            self._state.phase = RetryPhase.EXHAUSTED
            logger.warning(
                "sync.retry.exhausted",
                operation=self._name,
                attempts=self._state.attempt,
                error_kind=error.kind.value,
            )
            if self._on_exhausted is not None:
                self._on_exhausted(error)
            return

        delay_ms = calculate_backoff_delay_ms(
            self._state.attempt,
            base_delay_ms=self._state.base_delay_ms,
            cap_ms=self._state.cap_ms,
        )
        self._state.attempt += 1
        self._arm_timer(delay_ms)
        self._state.phase = RetryPhase.SCHEDULED
        logger.info(
            "sync.retry.scheduled",
            operation=self._name,
            attempt=self._state.attempt,
            delay_ms=delay_ms,
            error_kind=error.kind.value,
        )

    def _arm_timer(self, delay_ms: int) -> None:
        self._cancel_timer()
        self._timer = asyncio.create_task(
            self._fire_after(delay_ms / 1000),
            name=f"retry:{self._name}",
        )

    async def _fire_after(self, seconds: float) -> None:
        await self._sleep(seconds)
        self._timer = None
        await self._run()

    def _cancel_timer(self) -> None:
        timer = self._timer
        self._timer = None
        if timer is None or timer.done():
            return
        if timer is asyncio.current_task():
            return
        timer.cancel()


__all__ = [
    "DEFAULT_BASE_DELAY_MS",
    "DEFAULT_CAP_MS",
    "DEFAULT_MAX_ATTEMPTS",
    "RetryScheduler",
]
