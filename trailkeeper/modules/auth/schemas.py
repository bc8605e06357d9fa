"""Auth DTOs"""

from pydantic import BaseModel, Field


class VerifyTokenRequest(BaseModel):
    """DTO for verifying a self-signed token"""
    token: str = Field(..., min_length=1, description="Self-signed token issued on draft creation")


class VerifyTokenResponse(BaseModel):
    valid: bool
    userId: str
    issuedAt: int
