"""Time arithmetic shared by the cache, the scheduler and the write queue."""

from __future__ import annotations

from datetime import datetime, timedelta


def calculate_backoff_delay_ms(attempt: int, *, base_delay_ms: int, cap_ms: int) -> int:
    """Return ``min(cap, base * 2**attempt)`` for a zero-based ``attempt``."""

    if attempt < 0:
        raise ValueError("attempt must be non-negative")
    if base_delay_ms <= 0:
        raise ValueError("base_delay_ms must be positive")
    if cap_ms < base_delay_ms:
        raise ValueError("cap_ms must not be lower than base_delay_ms")

    # Past this point the doubling is already beyond any sane cap.
    if attempt >= 32:
        return cap_ms
    return min(cap_ms, base_delay_ms * (2**attempt))


def calculate_signed_url_expiry(
    issued_at: datetime,
    *,
    grant: timedelta,
    safety_margin: timedelta,
) -> datetime:
    """Return the local validity deadline of a freshly signed URL.

    The deadline always lands strictly before the server-side expiry so a
    cached URL is refreshed before the backend starts rejecting it.
    """

    if grant <= timedelta(0):
        raise ValueError("grant must be positive")
    if safety_margin <= timedelta(0):
        raise ValueError("safety_margin must be positive")
    if safety_margin >= grant:
        raise ValueError("safety_margin must be shorter than grant")
    return issued_at + grant - safety_margin


def is_within_cooldown(last_attempt: datetime | None, *, now: datetime, cooldown: timedelta) -> bool:
    """Return ``True`` when ``now`` is still inside the cooldown window."""

    if last_attempt is None or cooldown <= timedelta(0):
        return False
    if last_attempt.tzinfo is not None and now.tzinfo is None:
        now = now.replace(tzinfo=last_attempt.tzinfo)
    elif last_attempt.tzinfo is None and now.tzinfo is not None:
        last_attempt = last_attempt.replace(tzinfo=now.tzinfo)
    return now - last_attempt < cooldown


__all__ = [
    "calculate_backoff_delay_ms",
    "calculate_signed_url_expiry",
    "is_within_cooldown",
]
