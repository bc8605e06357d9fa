"""
Clock and TTL policy for draft trails.

All timestamps are integer epoch milliseconds so expiry arithmetic is exact
and matches the persisted layout.
"""

import math
import time
from typing import Protocol


MS_PER_SECOND = 1000
MS_PER_DAY = 24 * 60 * 60 * MS_PER_SECOND
DEFAULT_TTL_SECONDS = 7 * 24 * 60 * 60


class Clock(Protocol):
    """Source of the current time in epoch milliseconds."""

    def now_ms(self) -> int: ...


class SystemClock:
    """Wall clock backed by time.time()"""

    def now_ms(self) -> int:
        return int(time.time() * MS_PER_SECOND)


class FrozenClock:
    """
    Manually driven clock for tests and maintenance scripts.

    Usage:
        clock = FrozenClock(1_700_000_000_000)
        clock.advance(ms=1)
    """

    def __init__(self, now_ms: int = 0) -> None:
        self._now_ms = now_ms

    def now_ms(self) -> int:
        return self._now_ms

    def set(self, now_ms: int) -> None:
        self._now_ms = now_ms

    def advance(self, ms: int = 0, seconds: float = 0, days: float = 0) -> int:
        self._now_ms += ms + int(seconds * MS_PER_SECOND) + int(days * MS_PER_DAY)
        return self._now_ms


def compute_expiry(created_at_ms: int, ttl_seconds: int) -> int:
    """
    Expiry of a draft created at `created_at_ms`.

    Fixed at creation and never recomputed.
    """
    return created_at_ms + ttl_seconds * MS_PER_SECOND


def is_expired(expires_at_ms: int, now_ms: int) -> bool:
    # A draft is still reachable at exactly its expiry instant.
    return now_ms > expires_at_ms


def days_remaining(expires_at_ms: int, now_ms: int) -> int:
    """
    Whole days left before expiry, rounded up and floored at 0.

    Args:
        expires_at_ms: Expiry timestamp of the draft
        now_ms: Current time

    Returns:
        int: ceil((expires_at - now) / 1 day), never negative
    """
    return max(0, math.ceil((expires_at_ms - now_ms) / MS_PER_DAY))
