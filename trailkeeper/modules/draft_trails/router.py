"""
Draft Trails Router - API endpoints for staging and finalizing draft trails

Route precedence is fixed by order_routes_by_specificity: literal paths
(/my-drafts) are tried before sub-resource paths (/{referenceCode}/status),
which are tried before the bare /{referenceCode}.
"""

from fastapi import APIRouter, Depends, Request, status

from trailkeeper.core.response_interceptor import CustomAPIRoute
from trailkeeper.core.routing import order_routes_by_specificity
from trailkeeper.modules.auth.gate import get_current_identity
from trailkeeper.modules.auth.tokens import ExternalIdentity
from .service import DraftTrailsService
from .schemas import (
    CreateDraftTrailDto,
    CreateDraftTrailResponse,
    DraftTrailListResponse,
    DraftTrailResponse,
    MessageResponse,
    PaidUpdateResponse,
    StatusUpdateResponse,
    UpdatePaidDto,
    UpdatePayloadDto,
    UpdateStatusDto,
)

router = APIRouter(prefix="/draft-trails", tags=["draft-trails"], route_class=CustomAPIRoute)


def get_drafts_service(request: Request) -> DraftTrailsService:
    return request.app.state.drafts_service


@router.post("", response_model=CreateDraftTrailResponse, status_code=status.HTTP_201_CREATED)
async def create_draft_trail(
    dto: CreateDraftTrailDto,
    service: DraftTrailsService = Depends(get_drafts_service),
):
    """
    Save a draft trail. No authentication: the creator is self-asserted.
    An existing draft with the same reference code is replaced.
    Returns a self-signed token for the creator.
    """
    draft, token = await service.create(dto)
    return CreateDraftTrailResponse(
        message="Draft trail saved successfully",
        referenceCode=draft.reference_code,
        userId=draft.owner_id,
        userEmail=draft.owner_email,
        daysRemaining=draft.days_remaining,
        expiresAt=draft.expires_at,
        token=token,
    )


@router.get("", response_model=DraftTrailListResponse)
async def get_all_draft_trails(service: DraftTrailsService = Depends(get_drafts_service)):
    """
    Get all live draft trails (debug endpoint).
    Expired drafts are swept first.
    """
    drafts = await service.find_all()
    return DraftTrailListResponse(
        total=len(drafts),
        drafts=[DraftTrailResponse.from_record(d) for d in drafts],
    )


@router.get("/my-drafts", response_model=DraftTrailListResponse)
async def get_my_draft_trails(
    identity: ExternalIdentity = Depends(get_current_identity),
    service: DraftTrailsService = Depends(get_drafts_service),
):
    """
    Get the authenticated user's live draft trails.
    Requires: Authorization: Bearer <idToken>
    """
    drafts = await service.find_all_by_owner(identity)
    return DraftTrailListResponse(
        userEmail=identity.email,
        total=len(drafts),
        drafts=[DraftTrailResponse.from_record(d) for d in drafts],
    )


@router.put("/{referenceCode}/status", response_model=StatusUpdateResponse)
async def update_draft_trail_status(
    referenceCode: str,
    dto: UpdateStatusDto,
    identity: ExternalIdentity = Depends(get_current_identity),
    service: DraftTrailsService = Depends(get_drafts_service),
):
    """
    Update a draft trail's status (e.g. payment_failed, payment_completed).
    Owner only.
    """
    draft = await service.update_status(identity, referenceCode, dto.status)
    return StatusUpdateResponse(
        message="Draft trail status updated",
        referenceCode=draft.reference_code,
        status=draft.status,
    )


@router.put("/{referenceCode}/paid", response_model=PaidUpdateResponse)
async def update_draft_trail_paid(
    referenceCode: str,
    dto: UpdatePaidDto,
    identity: ExternalIdentity = Depends(get_current_identity),
    service: DraftTrailsService = Depends(get_drafts_service),
):
    """
    Mark a draft trail paid or unpaid. Owner only.
    """
    draft = await service.update_paid(identity, referenceCode, dto.isPaid)
    return PaidUpdateResponse(
        message="Draft trail paid status updated",
        referenceCode=draft.reference_code,
        isPaid=draft.is_paid,
        paidAt=draft.paid_at,
    )


@router.get("/{referenceCode}", response_model=DraftTrailResponse)
async def get_draft_trail(
    referenceCode: str,
    service: DraftTrailsService = Depends(get_drafts_service),
):
    """
    Get a draft trail by reference code. No authentication: the reference
    code is the capability. 410 if the draft has expired.
    """
    draft = await service.find_one(referenceCode)
    return DraftTrailResponse.from_record(draft)


@router.put("/{referenceCode}", response_model=DraftTrailResponse)
async def update_draft_trail(
    referenceCode: str,
    dto: UpdatePayloadDto,
    identity: ExternalIdentity = Depends(get_current_identity),
    service: DraftTrailsService = Depends(get_drafts_service),
):
    """
    Replace a draft trail's payload. Owner only.
    """
    draft = await service.update_payload(identity, referenceCode, dto.trailData)
    return DraftTrailResponse.from_record(draft)


@router.delete("/{referenceCode}", response_model=MessageResponse)
async def delete_draft_trail(
    referenceCode: str,
    identity: ExternalIdentity = Depends(get_current_identity),
    service: DraftTrailsService = Depends(get_drafts_service),
):
    """
    Delete a draft trail (e.g. after successful payment). Owner only.
    """
    await service.delete(identity, referenceCode)
    return MessageResponse(message="Draft trail deleted successfully")


order_routes_by_specificity(router)
