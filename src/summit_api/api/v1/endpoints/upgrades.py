"""Pass tier upgrade endpoints."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from summit_api.api.dependencies.session import require_member
from summit_api.api.errors import translate_domain_error
from summit_api.db.session import get_session
from summit_api.models.upgrades import UpgradeRecord
from summit_api.models.user import User
from summit_api.services.passes.exceptions import PassEngineError
from summit_api.services.passes.tiers import parse_tier
from summit_api.services.ticketing.client import TicketingProviderError
from summit_api.services.upgrades import UpgradeCheckoutService

from .passes import PassResponse, serialize_pass


router = APIRouter(prefix="/upgrades", tags=["upgrades"])


class UpgradeOptionResponse(BaseModel):
    tier: str
    price: Decimal
    fee: Decimal


class EligibilityResponse(BaseModel):
    canUpgrade: bool
    reason: str | None = None
    currentTier: str | None = None
    options: list[UpgradeOptionResponse] = Field(default_factory=list)


class UpgradeInitiateRequest(BaseModel):
    toTier: str


class UpgradeInitiateResponse(BaseModel):
    fee: Decimal
    currency: str
    paymentOrderRef: str
    transactionId: UUID
    fromTier: str
    toTier: str


class UpgradeCompleteRequest(BaseModel):
    toTier: str
    orderId: str = Field(..., min_length=1)
    paymentId: str = Field(..., min_length=1)
    signature: str = Field(..., min_length=1)


class UpgradeRecordResponse(BaseModel):
    id: UUID
    fromTier: str
    toTier: str
    fee: Decimal
    originalPrice: Decimal
    newPrice: Decimal
    status: str
    paymentReference: str | None
    createdAt: datetime


class UpgradeCompleteResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    pass_: PassResponse = Field(alias="pass")
    upgradeRecord: UpgradeRecordResponse


def serialize_upgrade(record: UpgradeRecord) -> UpgradeRecordResponse:
    return UpgradeRecordResponse(
        id=record.id,
        fromTier=record.from_tier.value,
        toTier=record.to_tier.value,
        fee=Decimal(record.fee),
        originalPrice=Decimal(record.original_price),
        newPrice=Decimal(record.new_price),
        status=record.status.value,
        paymentReference=record.payment_reference,
        createdAt=record.created_at,
    )


@router.get("/{pass_code}/eligibility", response_model=EligibilityResponse)
async def get_upgrade_eligibility(
    pass_code: str,
    user: User = Depends(require_member),
    db: AsyncSession = Depends(get_session),
) -> EligibilityResponse:
    try:
        eligibility = await UpgradeCheckoutService(db).eligibility(pass_code, user)
    except PassEngineError as error:
        raise translate_domain_error(error) from error
    record = eligibility.pass_record
    return EligibilityResponse(
        canUpgrade=eligibility.can_upgrade,
        reason=eligibility.reason,
        currentTier=record.tier.value if record is not None else None,
        options=[
            UpgradeOptionResponse(tier=option.tier.value, price=option.price, fee=option.fee)
            for option in eligibility.options
        ],
    )


@router.post("/{pass_code}/initiate", response_model=UpgradeInitiateResponse)
async def initiate_upgrade(
    pass_code: str,
    payload: UpgradeInitiateRequest,
    user: User = Depends(require_member),
    db: AsyncSession = Depends(get_session),
) -> UpgradeInitiateResponse:
    """Raise a payment order for the upgrade fee."""

    try:
        initiation = await UpgradeCheckoutService(db).initiate(pass_code, user, parse_tier(payload.toTier))
    except (PassEngineError, TicketingProviderError) as error:
        raise translate_domain_error(error) from error
    return UpgradeInitiateResponse(
        fee=initiation.fee,
        currency=initiation.transaction.currency,
        paymentOrderRef=initiation.payment_order_ref,
        transactionId=initiation.transaction.id,
        fromTier=initiation.from_tier.value,
        toTier=initiation.to_tier.value,
    )


@router.post("/{pass_code}/complete", response_model=UpgradeCompleteResponse)
async def complete_upgrade(
    pass_code: str,
    payload: UpgradeCompleteRequest,
    user: User = Depends(require_member),
    db: AsyncSession = Depends(get_session),
) -> UpgradeCompleteResponse:
    """Verify the upgrade payment and apply the new tier."""

    try:
        outcome = await UpgradeCheckoutService(db).complete(
            pass_code,
            user,
            parse_tier(payload.toTier),
            order_id=payload.orderId,
            payment_id=payload.paymentId,
            signature=payload.signature,
        )
    except PassEngineError as error:
        raise translate_domain_error(error) from error
    return UpgradeCompleteResponse(
        pass_=serialize_pass(outcome.pass_record),
        upgradeRecord=serialize_upgrade(outcome.record),
    )


@router.get("/{pass_code}/history", response_model=list[UpgradeRecordResponse])
async def get_upgrade_history(
    pass_code: str,
    user: User = Depends(require_member),
    db: AsyncSession = Depends(get_session),
) -> list[UpgradeRecordResponse]:
    try:
        records = await UpgradeCheckoutService(db).history(pass_code, user)
    except PassEngineError as error:
        raise translate_domain_error(error) from error
    return [serialize_upgrade(record) for record in records]
