"""Retry, optimistic update and offline queue primitives."""

from .cancellation import CancellationToken
from .counters import COMMENT, LIKE, UNLIKE, CounterDelta, OptimisticMutationCoordinator
from .retry_scheduler import RetryScheduler
from .write_queue import OfflineWriteQueue, SaveResult

__all__ = [
    "COMMENT",
    "LIKE",
    "UNLIKE",
    "CancellationToken",
    "CounterDelta",
    "OfflineWriteQueue",
    "OptimisticMutationCoordinator",
    "RetryScheduler",
    "SaveResult",
]
