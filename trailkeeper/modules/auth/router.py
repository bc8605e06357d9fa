"""
Auth Router - verification of self-signed tokens issued on draft creation
"""

from fastapi import APIRouter, Request

from trailkeeper.core.exceptions import UnauthorizedError
from trailkeeper.core.response_interceptor import CustomAPIRoute
from .schemas import VerifyTokenRequest, VerifyTokenResponse
from .tokens import TokenService

router = APIRouter(prefix="/auth", tags=["auth"], route_class=CustomAPIRoute)


@router.post("/verify", response_model=VerifyTokenResponse)
async def verify_token(dto: VerifyTokenRequest, request: Request):
    """
    Verify a self-signed token and return the subject it asserts.
    401 with the rejection reason (malformed, signature_mismatch, expired)
    otherwise.
    """
    tokens: TokenService = request.app.state.tokens
    check = tokens.verify_self_signed_token(dto.token)
    if not check.ok:
        raise UnauthorizedError(check.message, reason=check.reason.value)
    return VerifyTokenResponse(
        valid=True,
        userId=check.identity.subject,
        issuedAt=check.identity.issued_at_ms,
    )
