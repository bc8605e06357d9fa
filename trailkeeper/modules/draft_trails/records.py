"""
Draft trail domain records: the persisted record, its status graph and the
typed outcome of keyed lookups.
"""

import enum
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field

from trailkeeper.core import clock as ttl


class DraftStatus(str, enum.Enum):
    """Lifecycle status of a draft trail"""
    DRAFT = "draft"
    PAYMENT_PENDING = "payment_pending"
    PAYMENT_COMPLETED = "payment_completed"
    PAYMENT_FAILED = "payment_failed"
    SUBMITTED = "submitted"
    COMPLETED = "completed"
    EXPIRED = "expired"


# `expired` is reached through TTL only, so it is never a write target.
ALLOWED_TRANSITIONS: Dict[DraftStatus, FrozenSet[DraftStatus]] = {
    DraftStatus.DRAFT: frozenset({
        DraftStatus.PAYMENT_PENDING,
        DraftStatus.PAYMENT_COMPLETED,
        DraftStatus.PAYMENT_FAILED,
        DraftStatus.SUBMITTED,
    }),
    DraftStatus.PAYMENT_PENDING: frozenset({
        DraftStatus.PAYMENT_COMPLETED,
        DraftStatus.PAYMENT_FAILED,
        DraftStatus.DRAFT,
    }),
    DraftStatus.PAYMENT_FAILED: frozenset({
        DraftStatus.PAYMENT_PENDING,
        DraftStatus.PAYMENT_COMPLETED,
        DraftStatus.DRAFT,
    }),
    DraftStatus.SUBMITTED: frozenset({
        DraftStatus.PAYMENT_PENDING,
        DraftStatus.PAYMENT_COMPLETED,
        DraftStatus.COMPLETED,
    }),
    DraftStatus.PAYMENT_COMPLETED: frozenset(),
    DraftStatus.COMPLETED: frozenset(),
    DraftStatus.EXPIRED: frozenset(),
}

TERMINAL_STATUSES = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)


def can_transition(current: DraftStatus, target: DraftStatus) -> bool:
    """Re-setting the current status is always allowed."""
    return current == target or target in ALLOWED_TRANSITIONS[current]


class DraftTrail(BaseModel):
    """
    A staged draft, keyed by its client-supplied reference code.

    Field aliases are the wire and persisted names. `days_remaining` is
    derived at read time and never persisted.
    """

    reference_code: str = Field(alias="referenceCode")
    owner_id: str = Field(alias="userId")
    owner_email: str = Field(alias="userEmail")
    payload: Any = Field(alias="trailData")
    status: DraftStatus = DraftStatus.DRAFT
    is_paid: bool = Field(default=False, alias="isPaid")
    paid_at: Optional[int] = Field(default=None, alias="paidAt")
    created_at: int = Field(alias="createdAt")
    expires_at: int = Field(alias="expiresAt")
    version: int = 1
    days_remaining: Optional[int] = Field(default=None, alias="daysRemaining")

    model_config = ConfigDict(populate_by_name=True)

    def is_expired(self, now_ms: int) -> bool:
        return ttl.is_expired(self.expires_at, now_ms)

    def at(self, now_ms: int) -> "DraftTrail":
        """Copy with days_remaining computed for `now_ms`."""
        return self.model_copy(update={"days_remaining": ttl.days_remaining(self.expires_at, now_ms)})

    def to_document(self) -> Dict[str, Any]:
        """Persisted form: wire names, no derived fields."""
        return self.model_dump(mode="json", by_alias=True, exclude={"days_remaining"})


class LookupOutcome(str, enum.Enum):
    FOUND = "found"
    GONE = "gone"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class DraftLookup:
    """
    Result of a keyed store operation.

    GONE carries the expired record (already purged) so callers can report
    when it expired.
    """
    outcome: LookupOutcome
    record: Optional[DraftTrail] = None

    @classmethod
    def found(cls, record: DraftTrail) -> "DraftLookup":
        return cls(LookupOutcome.FOUND, record)

    @classmethod
    def gone(cls, record: DraftTrail) -> "DraftLookup":
        return cls(LookupOutcome.GONE, record)

    @classmethod
    def not_found(cls) -> "DraftLookup":
        return cls(LookupOutcome.NOT_FOUND)
