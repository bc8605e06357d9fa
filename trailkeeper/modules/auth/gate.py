"""
Authorization gate and FastAPI dependencies.

Mutations of a draft trail (status, paid flag, payload, delete) require a
bearer credential whose identity owns the draft. Creation and anonymous
lookup by reference code do not: a reference code works as a shared-link
capability.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from trailkeeper.core.exceptions import UnauthorizedError
from .tokens import ExternalIdentity, RejectionReason, TokenService

if TYPE_CHECKING:
    from trailkeeper.modules.draft_trails.records import DraftTrail

logger = logging.getLogger(__name__)


# HTTP Bearer token security scheme; missing headers are reported by the gate
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthOutcome:
    """Result of authenticating a request"""
    identity: Optional[ExternalIdentity] = None
    reason: Optional[RejectionReason] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.identity is not None


class AuthorizationGate:
    """
    Authenticates bearer credentials and decides ownership of drafts.
    """

    def __init__(self, tokens: TokenService) -> None:
        self.tokens = tokens

    def authenticate(self, credential: Optional[str]) -> AuthOutcome:
        """
        Resolve a bearer credential into an external identity.

        Args:
            credential: Raw token from the Authorization header, if any

        Returns:
            AuthOutcome carrying the identity, or the rejection reason
        """
        if not credential:
            return AuthOutcome(
                reason=RejectionReason.MISSING_CREDENTIAL,
                message="Missing Authorization header. Use: Authorization: Bearer <idToken>",
            )

        check = self.tokens.extract_external_identity(credential)
        if not check.ok:
            logger.info("Authentication rejected: %s", check.reason.value)
            return AuthOutcome(reason=check.reason, message=check.message)

        return AuthOutcome(identity=check.identity)

    @staticmethod
    def authorize_mutation(identity: ExternalIdentity, record: "DraftTrail") -> bool:
        """True if `identity` owns `record`."""
        return identity.email == record.owner_email


def get_gate(request: Request) -> AuthorizationGate:
    return request.app.state.gate


def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    gate: AuthorizationGate = Depends(get_gate),
) -> ExternalIdentity:
    """
    Dependency to get the authenticated identity from the bearer token.

    A plain function so FastAPI runs it in its threadpool: the jwks
    verifier may fetch the issuer's key set over blocking HTTP.

    Raises:
        UnauthorizedError: If the credential is absent, malformed, expired
            or untrusted; the rejection reason is attached
    """
    outcome = gate.authenticate(credentials.credentials if credentials else None)
    if not outcome.ok:
        if outcome.reason == RejectionReason.MISSING_CREDENTIAL:
            message = outcome.message
        else:
            message = f"Invalid or malformed token: {outcome.message}"
        raise UnauthorizedError(message, reason=outcome.reason.value)
    return outcome.identity
