"""Pass purchase orders, payment confirmation and refunds."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from summit_api.core.settings import settings
from summit_api.models.passes import Pass, PassStatusEnum, PassTier
from summit_api.models.transactions import (
    PassTransaction,
    TransactionKindEnum,
    TransactionStatusEnum,
)
from summit_api.models.user import User
from summit_api.services.ticketing.client import TicketingClient

from . import tiers
from .exceptions import (
    AlreadyHasPassError,
    InvalidStateError,
    NotFoundError,
    PaymentVerificationError,
    ValidationError,
)
from .store import BookingRefs, PassStore

_COMPLETABLE_STATUSES = {TransactionStatusEnum.PENDING, TransactionStatusEnum.FAILED}


@dataclass(slots=True)
class PurchaseOutcome:
    transaction: PassTransaction
    pass_record: Pass | None
    created: bool


def _merge_metadata(transaction: PassTransaction, **fields: Any) -> None:
    metadata = dict(transaction.metadata_json or {})
    metadata.update({key: value for key, value in fields.items() if value is not None})
    transaction.metadata_json = metadata


async def get_transaction_by_order(
    session: AsyncSession,
    order_id: str,
    *,
    for_update: bool = False,
) -> PassTransaction | None:
    stmt = select(PassTransaction).where(PassTransaction.provider_order_id == order_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


class PassPurchaseService:
    """Service for buying passes through the ticketing provider."""

    def __init__(self, session: AsyncSession, *, client: TicketingClient | None = None) -> None:
        self._session = session
        self._client = client or TicketingClient.from_settings()
        self._store = PassStore(session)

    async def get_transaction(self, transaction_id: UUID) -> PassTransaction:
        transaction = await self._session.get(PassTransaction, transaction_id)
        if transaction is None:
            raise NotFoundError("Transaction not found")
        return transaction

    async def create_order(self, user: User, tier: PassTier) -> PassTransaction:
        """Create a provider payment order and a pending purchase transaction."""

        user_id = user.id
        if tier == PassTier.FREE:
            raise ValidationError("Free passes cannot be purchased; they are issued directly")
        if await self._store.active_pass_for_user(user_id) is not None:
            raise AlreadyHasPassError()

        amount = tiers.tier_price(tier)
        receipt = f"pass_{user_id.hex[:12]}_{int(datetime.now(timezone.utc).timestamp())}"
        order = await self._client.create_payment_order(
            amount=amount,
            currency=settings.pass_currency,
            receipt=receipt,
            notes={"user_id": str(user_id), "tier": tier.value, "kind": TransactionKindEnum.PURCHASE.value},
        )

        transaction = PassTransaction(
            user_id=user_id,
            kind=TransactionKindEnum.PURCHASE,
            tier=tier,
            amount=amount,
            currency=order.currency,
            provider_order_id=order.order_id,
            status=TransactionStatusEnum.PENDING,
            metadata_json={"receipt": receipt},
        )
        self._session.add(transaction)
        await self._session.commit()
        logger.info(
            "Created pass purchase order",
            transaction_id=str(transaction.id),
            order_id=order.order_id,
            user_id=str(user_id),
            tier=tier.value,
        )
        return transaction

    async def confirm_payment(self, order_id: str, payment_id: str, signature: str | None) -> PurchaseOutcome:
        """Verify the provider's payment signature, then complete the purchase."""

        if not self._client.verify_payment(order_id, payment_id, signature):
            await self.mark_failed(order_id, "signature_mismatch")
            logger.warning("Payment signature verification failed", order_id=order_id)
            raise PaymentVerificationError("Payment verification failed")
        return await self.complete_purchase(order_id, payment_id)

    async def complete_purchase(
        self,
        order_id: str,
        payment_id: str | None,
        *,
        refs: BookingRefs | None = None,
    ) -> PurchaseOutcome:
        """Issue the pass for a paid order; replays return the existing pass.

        The pass insert and the transaction moving to ``completed`` commit
        together. A buyer who meanwhile obtained an active pass gets the
        transaction parked in ``refund_pending``.
        """

        transaction = await get_transaction_by_order(self._session, order_id, for_update=True)
        if transaction is None:
            raise NotFoundError(f"No transaction for order {order_id}")
        if transaction.kind != TransactionKindEnum.PURCHASE:
            raise InvalidStateError("Order does not belong to a pass purchase")

        if transaction.status == TransactionStatusEnum.COMPLETED:
            existing = await self._store.get(transaction.pass_id) if transaction.pass_id else None
            logger.info("Purchase already completed", order_id=order_id, transaction_id=str(transaction.id))
            return PurchaseOutcome(transaction=transaction, pass_record=existing, created=False)
        if transaction.status not in _COMPLETABLE_STATUSES:
            raise InvalidStateError(
                f"Transaction for order {order_id} is {transaction.status.value} and cannot be completed"
            )

        transaction_id = transaction.id
        user = await self._session.get(User, transaction.user_id)
        if user is None:
            raise NotFoundError("Purchasing user no longer exists")

        refs = refs or BookingRefs()
        refs.external_order_id = refs.external_order_id or order_id
        try:
            pass_record = await self._store.create_active_pass(
                user,
                transaction.tier,
                Decimal(transaction.amount),
                refs,
            )
        except AlreadyHasPassError:
            await self._session.rollback()
            transaction = await self._session.get(PassTransaction, transaction_id)
            transaction.status = TransactionStatusEnum.REFUND_PENDING
            transaction.provider_payment_id = payment_id or transaction.provider_payment_id
            _merge_metadata(transaction, refund_reason="user_already_has_pass")
            await self._session.commit()
            logger.warning(
                "Paid order for user with an active pass; refund required",
                order_id=order_id,
                transaction_id=str(transaction_id),
            )
            raise

        transaction.status = TransactionStatusEnum.COMPLETED
        transaction.provider_payment_id = payment_id or transaction.provider_payment_id
        transaction.pass_id = pass_record.id
        await self._session.commit()
        logger.info(
            "Pass purchase completed",
            order_id=order_id,
            transaction_id=str(transaction_id),
            pass_id=str(pass_record.id),
        )
        return PurchaseOutcome(transaction=transaction, pass_record=pass_record, created=True)

    async def mark_failed(self, order_id: str, reason: str | None = None) -> PassTransaction | None:
        transaction = await get_transaction_by_order(self._session, order_id)
        if transaction is None:
            logger.warning("Transaction not found for failure update", order_id=order_id)
            return None
        if transaction.status != TransactionStatusEnum.PENDING:
            return transaction
        transaction.status = TransactionStatusEnum.FAILED
        _merge_metadata(transaction, failure_reason=reason or "payment_failed")
        await self._session.commit()
        logger.info("Marked transaction failed", order_id=order_id, reason=reason)
        return transaction

    async def process_refund(self, payment_id: str, refund_id: str | None = None) -> PassTransaction | None:
        stmt = select(PassTransaction).where(PassTransaction.provider_payment_id == payment_id)
        transaction = (await self._session.execute(stmt)).scalars().first()
        if transaction is None:
            logger.warning("Transaction not found for refund", payment_id=payment_id)
            return None
        if transaction.status == TransactionStatusEnum.REFUNDED:
            return transaction

        transaction.status = TransactionStatusEnum.REFUNDED
        _merge_metadata(transaction, refund_id=refund_id)
        if transaction.kind == TransactionKindEnum.PURCHASE and transaction.pass_id is not None:
            record = await self._store.lock(transaction.pass_id)
            if record is not None:
                await self._store.mark_status(record, PassStatusEnum.REFUNDED)
        await self._session.commit()
        logger.info(
            "Processed refund",
            payment_id=payment_id,
            refund_id=refund_id,
            transaction_id=str(transaction.id),
        )
        return transaction

    async def cancel_passes_for_order(self, order_id: str) -> int:
        passes = await self._store.list_by_external_order_id(order_id)
        cancelled = 0
        for record in passes:
            if record.status == PassStatusEnum.ACTIVE:
                await self._store.mark_status(record, PassStatusEnum.CANCELLED)
                cancelled += 1
        await self._session.commit()
        logger.info("Cancelled passes for order", order_id=order_id, cancelled=cancelled)
        return cancelled

    async def issue_pass(
        self,
        user: User,
        tier: PassTier,
        *,
        refs: BookingRefs | None = None,
        price: Decimal | None = None,
    ) -> Pass:
        """Issue an active pass directly, without a payment order."""

        record = await self._store.create_active_pass(
            user,
            tier,
            tiers.tier_price(tier) if price is None else price,
            refs,
        )
        await self._session.commit()
        logger.info("Issued pass", pass_id=str(record.id), user_id=str(record.user_id), tier=tier.value)
        return record


__all__ = ["PassPurchaseService", "PurchaseOutcome", "get_transaction_by_order"]
