"""Pending pass claim endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from summit_api.api.dependencies.security import require_admin_api_key
from summit_api.api.dependencies.session import require_member
from summit_api.api.errors import translate_domain_error
from summit_api.db.session import get_session
from summit_api.models.claims import PendingClaim
from summit_api.models.user import User
from summit_api.services.claims import ClaimIdentifiers, ClaimLifecycleManager, ClaimResolution
from summit_api.services.passes.exceptions import ForbiddenError, NotFoundError, PassEngineError

from .passes import PassResponse, serialize_pass


router = APIRouter(prefix="/pass-claims", tags=["pass-claims"])


class ClaimSubmitRequest(BaseModel):
    email: str | None = Field(default=None, description="Email used for the external purchase")
    fullName: str | None = None
    bookingId: str | None = None
    orderId: str | None = None
    ticketNumber: str | None = None
    qrPayload: str | None = None
    requestedTier: str | None = None
    documentUrl: str | None = Field(default=None, description="Reference to an uploaded proof of purchase")
    extractedData: dict[str, Any] | None = None


class ClaimResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: Literal["pending", "verified", "expired", "cancelled"]
    claimId: UUID
    expiresAt: datetime
    createdAt: datetime
    verifiedAt: datetime | None = None
    bookingId: str | None = None
    orderId: str | None = None
    ticketNumber: str | None = None
    requestedTier: str | None = None
    message: str
    pass_: PassResponse | None = Field(default=None, alias="pass")


def serialize_claim(resolution: ClaimResolution) -> ClaimResponse:
    claim = resolution.claim
    return ClaimResponse(
        status=claim.status.value,
        claimId=claim.id,
        expiresAt=claim.expires_at,
        createdAt=claim.created_at,
        verifiedAt=claim.verified_at,
        bookingId=claim.booking_id,
        orderId=claim.external_order_id,
        ticketNumber=claim.ticket_number,
        requestedTier=claim.requested_tier,
        message=resolution.message,
        pass_=serialize_pass(resolution.pass_record) if resolution.pass_record is not None else None,
    )


async def _owned_claim(db: AsyncSession, claim_id: UUID, user: User) -> PendingClaim:
    claim = await db.get(PendingClaim, claim_id)
    if claim is None:
        raise NotFoundError("Claim not found")
    if claim.user_id != user.id:
        raise ForbiddenError("You can only view your own claims")
    return claim


@router.post("", response_model=ClaimResponse)
async def submit_claim(
    payload: ClaimSubmitRequest,
    user: User = Depends(require_member),
    db: AsyncSession = Depends(get_session),
) -> ClaimResponse:
    """Submit identifiers for an externally purchased pass.

    Returns the claim already verified when a matching pass is found,
    otherwise the pending claim with its expiry deadline.
    """

    try:
        identifiers = ClaimIdentifiers(
            booking_id=payload.bookingId,
            order_id=payload.orderId,
            ticket_number=payload.ticketNumber,
            qr_payload=payload.qrPayload,
        )
        resolution = await ClaimLifecycleManager(db).submit(
            user,
            identifiers,
            email=payload.email,
            full_name=payload.fullName,
            requested_tier=payload.requestedTier,
            document_url=payload.documentUrl,
            extracted_data=payload.extractedData,
        )
    except PassEngineError as error:
        raise translate_domain_error(error) from error
    return serialize_claim(resolution)


@router.get("", response_model=list[ClaimResponse])
async def list_claims(
    user: User = Depends(require_member),
    db: AsyncSession = Depends(get_session),
) -> list[ClaimResponse]:
    resolutions = await ClaimLifecycleManager(db).list_for_user(user)
    return [serialize_claim(resolution) for resolution in resolutions]


@router.get("/{claim_id}/status", response_model=ClaimResponse)
async def get_claim_status(
    claim_id: UUID,
    user: User = Depends(require_member),
    db: AsyncSession = Depends(get_session),
) -> ClaimResponse:
    try:
        await _owned_claim(db, claim_id, user)
        resolution = await ClaimLifecycleManager(db).get_status(claim_id)
    except PassEngineError as error:
        raise translate_domain_error(error) from error
    return serialize_claim(resolution)


@router.delete("/{claim_id}")
async def cancel_claim(
    claim_id: UUID,
    user: User = Depends(require_member),
    db: AsyncSession = Depends(get_session),
) -> dict[str, str]:
    try:
        claim = await ClaimLifecycleManager(db).cancel(claim_id, user)
    except PassEngineError as error:
        raise translate_domain_error(error) from error
    return {"status": claim.status.value, "claimId": str(claim.id)}


@router.post("/sweep", dependencies=[Depends(require_admin_api_key)])
async def sweep_claims(db: AsyncSession = Depends(get_session)) -> dict[str, int]:
    """Expire overdue pending claims immediately."""

    expired = await ClaimLifecycleManager(db).sweep_expired()
    return {"expired": expired}
