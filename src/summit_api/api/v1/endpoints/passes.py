"""Pass lookup and direct issuance endpoints."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from summit_api.api.dependencies.security import require_admin_api_key
from summit_api.api.dependencies.session import require_member
from summit_api.api.errors import translate_domain_error
from summit_api.db.session import get_session
from summit_api.models.passes import Pass, PassStatusEnum
from summit_api.models.user import User
from summit_api.services.identity import IdentityResolver
from summit_api.services.passes import BookingRefs, PassPurchaseService, PassStore
from summit_api.services.passes.exceptions import ForbiddenError, NotFoundError, PassEngineError
from summit_api.services.passes.tiers import parse_tier


router = APIRouter(prefix="/passes", tags=["passes"])


class PassResponse(BaseModel):
    id: UUID
    passCode: str
    tier: str
    price: Decimal
    status: str
    bookingId: str | None
    externalOrderId: str | None
    externalTicketId: str | None
    originalTier: str | None
    upgradedFrom: str | None
    upgradedAt: datetime | None
    purchasedAt: datetime
    ticketDetails: dict[str, Any] | None = None


class PassIssueRequest(BaseModel):
    email: str = Field(..., min_length=3)
    externalId: str | None = None
    fullName: str | None = None
    tier: str
    price: Decimal | None = Field(default=None, ge=0)
    bookingId: str | None = None
    orderId: str | None = None
    ticketId: str | None = None
    qrPayload: str | None = None
    documentUrl: str | None = None


def serialize_pass(record: Pass) -> PassResponse:
    return PassResponse(
        id=record.id,
        passCode=record.pass_code,
        tier=record.tier.value,
        price=Decimal(record.price),
        status=record.status.value,
        bookingId=record.booking_id,
        externalOrderId=record.external_order_id,
        externalTicketId=record.external_ticket_id,
        originalTier=record.original_tier.value if record.original_tier else None,
        upgradedFrom=record.upgraded_from.value if record.upgraded_from else None,
        upgradedAt=record.upgraded_at,
        purchasedAt=record.purchased_at,
        ticketDetails=record.ticket_details,
    )


@router.get("/me", response_model=list[PassResponse])
async def list_my_passes(
    user: User = Depends(require_member),
    db: AsyncSession = Depends(get_session),
) -> list[PassResponse]:
    records = await PassStore(db).list_for_user(user.id)
    records.sort(key=lambda record: record.status != PassStatusEnum.ACTIVE)
    return [serialize_pass(record) for record in records]


@router.get("/{pass_code}", response_model=PassResponse)
async def get_pass(
    pass_code: str,
    user: User = Depends(require_member),
    db: AsyncSession = Depends(get_session),
) -> PassResponse:
    try:
        record = await PassStore(db).get_by_code(pass_code)
        if record is None:
            raise NotFoundError("Pass not found")
        if record.user_id != user.id:
            raise ForbiddenError("This pass belongs to another user")
    except PassEngineError as error:
        raise translate_domain_error(error) from error
    return serialize_pass(record)


@router.post(
    "",
    response_model=PassResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin_api_key)],
)
async def issue_pass(
    payload: PassIssueRequest,
    db: AsyncSession = Depends(get_session),
) -> PassResponse:
    """Issue an active pass directly (sponsored, complimentary or offline sales)."""

    try:
        tier = parse_tier(payload.tier)
        user = await IdentityResolver(db).resolve(payload.externalId, payload.email, full_name=payload.fullName)
        record = await PassPurchaseService(db).issue_pass(
            user,
            tier,
            refs=BookingRefs(
                booking_id=payload.bookingId,
                external_order_id=payload.orderId,
                external_ticket_id=payload.ticketId,
                qr_payload=payload.qrPayload,
                document_url=payload.documentUrl,
            ),
            price=payload.price,
        )
    except PassEngineError as error:
        raise translate_domain_error(error) from error
    return serialize_pass(record)
