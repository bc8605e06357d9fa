"""
Tests for the TTL arithmetic.
"""

from trailkeeper.core.clock import (
    MS_PER_DAY,
    FrozenClock,
    compute_expiry,
    days_remaining,
    is_expired,
)
from tests.conftest import TTL_SECONDS
from tests.credentials import T0_MS


def test_expiry_is_creation_plus_ttl():
    assert compute_expiry(T0_MS, TTL_SECONDS) == T0_MS + 7 * MS_PER_DAY


def test_record_is_live_at_exactly_its_expiry():
    expires_at = compute_expiry(T0_MS, TTL_SECONDS)

    assert not is_expired(expires_at, expires_at - 1)
    assert not is_expired(expires_at, expires_at)
    assert is_expired(expires_at, expires_at + 1)


def test_days_remaining_rounds_up():
    expires_at = compute_expiry(T0_MS, TTL_SECONDS)

    assert days_remaining(expires_at, T0_MS) == 7
    assert days_remaining(expires_at, T0_MS + 1) == 7
    assert days_remaining(expires_at, T0_MS + MS_PER_DAY) == 6
    assert days_remaining(expires_at, expires_at - 1) == 1


def test_days_remaining_never_negative():
    expires_at = compute_expiry(T0_MS, TTL_SECONDS)

    assert days_remaining(expires_at, expires_at) == 0
    assert days_remaining(expires_at, expires_at + 3 * MS_PER_DAY) == 0


def test_frozen_clock_advance():
    clock = FrozenClock(T0_MS)

    assert clock.advance(ms=5) == T0_MS + 5
    assert clock.advance(seconds=1) == T0_MS + 1005
    assert clock.advance(days=1) == T0_MS + 1005 + MS_PER_DAY

    clock.set(0)
    assert clock.now_ms() == 0
