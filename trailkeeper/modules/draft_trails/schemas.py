"""
Draft Trails DTOs (Data Transfer Objects)
"""

from pydantic import BaseModel, Field, field_validator
from typing import Any, List, Optional

from .records import DraftStatus, DraftTrail

# Literal paths under /draft-trails; a draft with one of these codes could
# never be fetched by code
RESERVED_REFERENCE_CODES = frozenset({"my-drafts"})


class CreateDraftTrailDto(BaseModel):
    """DTO for creating (or replacing) a draft trail"""
    referenceCode: str = Field(
        ..., min_length=1, max_length=255, pattern=r"^[^/]+$",
        description="Client-chosen reference code; also the shared-link capability",
    )
    userId: str = Field(
        ..., min_length=1, max_length=255, pattern=r"^[^:]+$",
        description="Creator id",
    )
    userEmail: str = Field(..., min_length=3, max_length=320, description="Creator email")
    trailData: Any = Field(..., description="Opaque trail state, stored verbatim")

    @field_validator("referenceCode", "userId", "userEmail")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value

    @field_validator("referenceCode")
    @classmethod
    def not_reserved(cls, value: str) -> str:
        if value in RESERVED_REFERENCE_CODES:
            raise ValueError(f"'{value}' is a reserved path and cannot be used as a reference code")
        return value

    @field_validator("trailData")
    @classmethod
    def trail_data_present(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("trailData is required")
        return value


class UpdateStatusDto(BaseModel):
    """DTO for updating a draft trail's status"""
    status: DraftStatus = Field(..., description="New status")


class UpdatePaidDto(BaseModel):
    """DTO for marking a draft trail paid or unpaid"""
    isPaid: bool = Field(..., description="Paid flag")


class UpdatePayloadDto(BaseModel):
    """DTO for replacing a draft trail's payload"""
    trailData: Any = Field(..., description="New opaque trail state")

    @field_validator("trailData")
    @classmethod
    def trail_data_present(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("trailData is required")
        return value


class DraftTrailResponse(BaseModel):
    """Response model for a draft trail"""
    referenceCode: str
    userId: str
    userEmail: str
    trailData: Any
    status: DraftStatus
    isPaid: bool
    paidAt: Optional[int]
    createdAt: int
    expiresAt: int
    daysRemaining: int

    @classmethod
    def from_record(cls, record: DraftTrail) -> "DraftTrailResponse":
        return cls(
            referenceCode=record.reference_code,
            userId=record.owner_id,
            userEmail=record.owner_email,
            trailData=record.payload,
            status=record.status,
            isPaid=record.is_paid,
            paidAt=record.paid_at,
            createdAt=record.created_at,
            expiresAt=record.expires_at,
            daysRemaining=record.days_remaining or 0,
        )


class CreateDraftTrailResponse(BaseModel):
    """Response for a saved draft trail, with the creator's self-signed token"""
    message: str
    referenceCode: str
    userId: str
    userEmail: str
    daysRemaining: int
    expiresAt: int
    token: str


class DraftTrailListResponse(BaseModel):
    """Listing of live draft trails"""
    userEmail: Optional[str] = None
    total: int
    drafts: List[DraftTrailResponse]


class StatusUpdateResponse(BaseModel):
    message: str
    referenceCode: str
    status: DraftStatus


class PaidUpdateResponse(BaseModel):
    message: str
    referenceCode: str
    isPaid: bool
    paidAt: Optional[int]


class MessageResponse(BaseModel):
    message: str
