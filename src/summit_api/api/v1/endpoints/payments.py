"""Pass purchase payment endpoints."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from summit_api.api.dependencies.session import require_member
from summit_api.api.errors import translate_domain_error
from summit_api.db.session import get_session
from summit_api.models.transactions import PassTransaction
from summit_api.models.user import User
from summit_api.services.passes import PassPurchaseService
from summit_api.services.passes.exceptions import ForbiddenError, NotFoundError, PassEngineError
from summit_api.services.passes.purchases import get_transaction_by_order
from summit_api.services.passes.tiers import parse_tier
from summit_api.services.ticketing.client import TicketingProviderError

from .passes import PassResponse, serialize_pass


router = APIRouter(prefix="/payments", tags=["payments"])


class OrderRequest(BaseModel):
    tier: str = Field(..., description="Pass tier to purchase")


class OrderResponse(BaseModel):
    transactionId: UUID
    orderId: str
    amount: Decimal
    currency: str
    tier: str


class VerifyRequest(BaseModel):
    orderId: str = Field(..., min_length=1)
    paymentId: str = Field(..., min_length=1)
    signature: str = Field(..., min_length=1)


class VerifyResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    transactionId: UUID
    pass_: PassResponse | None = Field(default=None, alias="pass")


class FailedRequest(BaseModel):
    orderId: str = Field(..., min_length=1)
    reason: str | None = None


class TransactionResponse(BaseModel):
    id: UUID
    kind: str
    tier: str
    amount: Decimal
    currency: str
    status: str
    orderId: str
    paymentId: str | None
    passId: UUID | None
    upgradeId: UUID | None


def serialize_transaction(transaction: PassTransaction) -> TransactionResponse:
    return TransactionResponse(
        id=transaction.id,
        kind=transaction.kind.value,
        tier=transaction.tier.value,
        amount=Decimal(transaction.amount),
        currency=transaction.currency,
        status=transaction.status.value,
        orderId=transaction.provider_order_id,
        paymentId=transaction.provider_payment_id,
        passId=transaction.pass_id,
        upgradeId=transaction.upgrade_id,
    )


async def _owned_order(db: AsyncSession, order_id: str, user: User) -> PassTransaction:
    transaction = await get_transaction_by_order(db, order_id)
    if transaction is None:
        raise NotFoundError("Payment order not found")
    if transaction.user_id != user.id:
        raise ForbiddenError("This payment order belongs to another user")
    return transaction


@router.post("/orders", response_model=OrderResponse)
async def create_order(
    payload: OrderRequest,
    user: User = Depends(require_member),
    db: AsyncSession = Depends(get_session),
) -> OrderResponse:
    try:
        transaction = await PassPurchaseService(db).create_order(user, parse_tier(payload.tier))
    except (PassEngineError, TicketingProviderError) as error:
        raise translate_domain_error(error) from error
    return OrderResponse(
        transactionId=transaction.id,
        orderId=transaction.provider_order_id,
        amount=Decimal(transaction.amount),
        currency=transaction.currency,
        tier=transaction.tier.value,
    )


@router.post("/verify", response_model=VerifyResponse)
async def verify_payment(
    payload: VerifyRequest,
    user: User = Depends(require_member),
    db: AsyncSession = Depends(get_session),
) -> VerifyResponse:
    """Confirm a completed checkout and issue the pass."""

    try:
        await _owned_order(db, payload.orderId, user)
        outcome = await PassPurchaseService(db).confirm_payment(
            payload.orderId,
            payload.paymentId,
            payload.signature,
        )
    except PassEngineError as error:
        raise translate_domain_error(error) from error
    return VerifyResponse(
        success=True,
        transactionId=outcome.transaction.id,
        pass_=serialize_pass(outcome.pass_record) if outcome.pass_record is not None else None,
    )


@router.post("/failed")
async def report_payment_failed(
    payload: FailedRequest,
    user: User = Depends(require_member),
    db: AsyncSession = Depends(get_session),
) -> dict[str, bool]:
    try:
        await _owned_order(db, payload.orderId, user)
        await PassPurchaseService(db).mark_failed(payload.orderId, payload.reason)
    except PassEngineError as error:
        raise translate_domain_error(error) from error
    return {"success": True}


@router.get("/transactions/{transaction_id}", response_model=TransactionResponse)
async def get_transaction(
    transaction_id: UUID,
    user: User = Depends(require_member),
    db: AsyncSession = Depends(get_session),
) -> TransactionResponse:
    try:
        transaction = await PassPurchaseService(db).get_transaction(transaction_id)
        if transaction.user_id != user.id:
            raise ForbiddenError("This transaction belongs to another user")
    except PassEngineError as error:
        raise translate_domain_error(error) from error
    return serialize_transaction(transaction)
