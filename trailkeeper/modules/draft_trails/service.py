"""
DraftTrailsService - Business logic for staging, resuming and finalizing
draft trails
"""

import logging
from typing import Any, List, Tuple

from trailkeeper.core.clock import Clock, compute_expiry
from trailkeeper.core.exceptions import (
    ConflictError,
    ForbiddenError,
    GoneError,
    NotFoundError,
)
from trailkeeper.core.locks import KeyedLock
from trailkeeper.modules.auth.gate import AuthorizationGate
from trailkeeper.modules.auth.tokens import ExternalIdentity, TokenService
from .records import DraftLookup, DraftStatus, DraftTrail, LookupOutcome, can_transition
from .schemas import CreateDraftTrailDto
from .store import DraftStore

logger = logging.getLogger(__name__)

RESOURCE = "Draft trail"


class DraftTrailsService:
    """
    Draft trails service.

    Every mutation of a reference code runs get -> authorize -> write while
    holding that code's lock, so concurrent mutations of one draft are
    serialized and none of them is lost.
    """

    def __init__(
        self,
        store: DraftStore,
        gate: AuthorizationGate,
        tokens: TokenService,
        clock: Clock,
        ttl_seconds: int,
        allow_free_status_overwrite: bool = False,
        enable_debug_listing: bool = True,
    ) -> None:
        self.store = store
        self.gate = gate
        self.tokens = tokens
        self.clock = clock
        self.ttl_seconds = ttl_seconds
        self.allow_free_status_overwrite = allow_free_status_overwrite
        self.enable_debug_listing = enable_debug_listing
        self._locks = KeyedLock()

    @staticmethod
    def _require_found(code: str, lookup: DraftLookup) -> DraftTrail:
        """
        Unwrap a lookup or raise the matching HTTP error.

        Raises:
            NotFoundError: Never created or already purged
            GoneError: Expired (and purged by the lookup)
        """
        if lookup.outcome == LookupOutcome.GONE:
            raise GoneError(RESOURCE, lookup.record.expires_at)
        if lookup.outcome == LookupOutcome.NOT_FOUND:
            raise NotFoundError(RESOURCE, code)
        return lookup.record

    async def create(self, create_dto: CreateDraftTrailDto) -> Tuple[DraftTrail, str]:
        """
        Save a draft trail, replacing any draft with the same reference code.

        Args:
            create_dto: Validated create request

        Returns:
            Tuple of (stored draft, self-signed token for the creator)
        """
        code = create_dto.referenceCode
        async with self._locks.hold(code):
            now = self.clock.now_ms()
            draft = DraftTrail(
                reference_code=code,
                owner_id=create_dto.userId,
                owner_email=create_dto.userEmail,
                payload=create_dto.trailData,
                status=DraftStatus.DRAFT,
                created_at=now,
                expires_at=compute_expiry(now, self.ttl_seconds),
            )
            stored = await self.store.create(draft)

        token = self.tokens.issue_self_signed_token(stored.owner_id)
        logger.info("Draft trail %s saved, expires in %s day(s)", code, stored.days_remaining)
        return stored, token

    async def find_one(self, code: str) -> DraftTrail:
        """
        Anonymous lookup by reference code.

        Raises:
            NotFoundError: If the code is unknown
            GoneError: If the draft has expired
        """
        lookup = await self.store.get(code)
        if lookup.outcome == LookupOutcome.GONE:
            logger.info("Draft trail %s expired at %s", code, lookup.record.expires_at)
        return self._require_found(code, lookup)

    async def find_all(self) -> List[DraftTrail]:
        """Every live draft trail (debug listing)."""
        if not self.enable_debug_listing:
            raise ForbiddenError("Listing all draft trails is disabled")
        return await self.store.list_all()

    async def find_all_by_owner(self, identity: ExternalIdentity) -> List[DraftTrail]:
        drafts = await self.store.list_by_owner(identity.email)
        logger.info("Retrieved %d active draft trail(s) for subject %s", len(drafts), identity.subject)
        return drafts

    async def _owned(self, identity: ExternalIdentity, code: str, action: str) -> DraftTrail:
        """
        Live draft owned by `identity`. Must be called holding the code's lock.

        Raises:
            NotFoundError, GoneError: As for find_one
            ForbiddenError: If the identity does not own the draft
        """
        record = self._require_found(code, await self.store.get(code))
        if not self.gate.authorize_mutation(identity, record):
            logger.warning("Rejected %s of draft trail %s by subject %s", action, code, identity.subject)
            raise ForbiddenError(f"Forbidden: you can only {action} your own drafts")
        return record

    async def update_status(self, identity: ExternalIdentity, code: str, status: DraftStatus) -> DraftTrail:
        """
        Move a draft to `status`.

        Raises:
            ConflictError: If the transition is not allowed (unless free
                overwrite is enabled)
        """
        async with self._locks.hold(code):
            record = await self._owned(identity, code, "update")
            if not self.allow_free_status_overwrite and not can_transition(record.status, status):
                raise ConflictError(
                    f"Invalid status transition: {record.status.value} -> {status.value}"
                )
            updated = self._require_found(code, await self.store.update_status(code, status))

        logger.info("Draft trail %s status %s -> %s", code, record.status.value, status.value)
        return updated

    async def update_paid(self, identity: ExternalIdentity, code: str, is_paid: bool) -> DraftTrail:
        async with self._locks.hold(code):
            await self._owned(identity, code, "update")
            updated = self._require_found(code, await self.store.update_paid(code, is_paid))

        logger.info("Draft trail %s paid flag set to %s", code, is_paid)
        return updated

    async def update_payload(self, identity: ExternalIdentity, code: str, payload: Any) -> DraftTrail:
        async with self._locks.hold(code):
            await self._owned(identity, code, "update")
            updated = self._require_found(code, await self.store.update_payload(code, payload))

        logger.info("Draft trail %s payload replaced", code)
        return updated

    async def delete(self, identity: ExternalIdentity, code: str) -> None:
        async with self._locks.hold(code):
            await self._owned(identity, code, "delete")
            await self.store.delete(code)

        logger.info("Draft trail %s deleted", code)
