"""Paid upgrade flow: eligibility, payment order initiation and completion."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from summit_api.core.settings import settings
from summit_api.models.passes import Pass, PassTier
from summit_api.models.transactions import (
    PassTransaction,
    TransactionKindEnum,
    TransactionStatusEnum,
)
from summit_api.models.upgrades import UpgradeRecord
from summit_api.models.user import User
from summit_api.services.passes import tiers
from summit_api.services.passes.exceptions import (
    ForbiddenError,
    InvalidStateError,
    InvalidUpgradeError,
    NotFoundError,
    PaymentVerificationError,
    ValidationError,
)
from summit_api.services.passes.purchases import get_transaction_by_order
from summit_api.services.passes.store import PassStore
from summit_api.services.ticketing.client import TicketingClient

from .engine import Eligibility, UpgradeEngine, UpgradeOutcome


@dataclass(slots=True)
class UpgradeInitiation:
    fee: Decimal
    payment_order_ref: str
    transaction: PassTransaction
    from_tier: PassTier
    to_tier: PassTier


class UpgradeCheckoutService:
    """Wraps ``UpgradeEngine`` with pass ownership and payment checks."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        client: TicketingClient | None = None,
        engine: UpgradeEngine | None = None,
    ) -> None:
        self._session = session
        self._client = client or TicketingClient.from_settings()
        self._store = PassStore(session)
        self._engine = engine or UpgradeEngine(session, store=self._store)

    async def owned_pass(self, pass_code: str, user: User) -> Pass:
        record = await self._store.get_by_code(pass_code)
        if record is None:
            raise NotFoundError("Pass not found")
        if record.user_id != user.id:
            raise ForbiddenError("This pass belongs to another user")
        return record

    async def eligibility(self, pass_code: str, user: User) -> Eligibility:
        record = await self.owned_pass(pass_code, user)
        return self._engine.evaluate(record)

    async def history(self, pass_code: str, user: User) -> list[UpgradeRecord]:
        record = await self.owned_pass(pass_code, user)
        return await self._engine.history(record.id)

    async def initiate(self, pass_code: str, user: User, to_tier: PassTier) -> UpgradeInitiation:
        """Create a payment order for the fee between the current tier and ``to_tier``."""

        record = await self.owned_pass(pass_code, user)
        eligibility = self._engine.evaluate(record)
        if not eligibility.can_upgrade:
            raise InvalidUpgradeError(eligibility.reason or "Pass cannot be upgraded")

        from_tier = record.tier
        if not tiers.is_valid_upgrade(from_tier, to_tier):
            raise InvalidUpgradeError(f"Cannot upgrade from {from_tier.value} to {to_tier.value}")

        fee = tiers.compute_fee(from_tier, to_tier)
        pass_id = record.id
        user_id = user.id
        receipt = f"upgrade_{pass_id.hex[:12]}_{int(datetime.now(timezone.utc).timestamp())}"
        order = await self._client.create_payment_order(
            amount=fee,
            currency=settings.pass_currency,
            receipt=receipt,
            notes={
                "pass_id": str(pass_id),
                "from_tier": from_tier.value,
                "to_tier": to_tier.value,
                "kind": TransactionKindEnum.UPGRADE.value,
            },
        )
        transaction = PassTransaction(
            user_id=user_id,
            pass_id=pass_id,
            kind=TransactionKindEnum.UPGRADE,
            tier=to_tier,
            amount=fee,
            currency=order.currency,
            provider_order_id=order.order_id,
            status=TransactionStatusEnum.PENDING,
            metadata_json={"from_tier": from_tier.value, "receipt": receipt},
        )
        self._session.add(transaction)
        await self._session.commit()
        logger.info(
            "Initiated pass upgrade",
            pass_id=str(pass_id),
            order_id=order.order_id,
            from_tier=from_tier.value,
            to_tier=to_tier.value,
            fee=str(fee),
        )
        return UpgradeInitiation(
            fee=fee,
            payment_order_ref=order.order_id,
            transaction=transaction,
            from_tier=from_tier,
            to_tier=to_tier,
        )

    async def complete(
        self,
        pass_code: str,
        user: User,
        to_tier: PassTier,
        *,
        order_id: str,
        payment_id: str,
        signature: str | None,
    ) -> UpgradeOutcome:
        """Apply a paid upgrade. Fails closed on any payment mismatch."""

        record = await self.owned_pass(pass_code, user)
        pass_id = record.id
        transaction = await get_transaction_by_order(self._session, order_id, for_update=True)
        if transaction is None:
            raise NotFoundError("Upgrade payment order not found")
        if transaction.kind != TransactionKindEnum.UPGRADE or transaction.pass_id != pass_id:
            raise ValidationError("Payment order does not belong to this pass upgrade")
        if transaction.tier != to_tier:
            raise ValidationError("Payment order was raised for a different tier")

        if transaction.upgrade_id is not None:
            upgrade = await self._session.get(UpgradeRecord, transaction.upgrade_id)
            logger.info("Upgrade already completed", pass_id=str(pass_id), order_id=order_id)
            return UpgradeOutcome(pass_record=record, record=upgrade)

        if not self._client.verify_payment(order_id, payment_id, signature):
            transaction.status = TransactionStatusEnum.FAILED
            transaction.metadata_json = {**(transaction.metadata_json or {}), "failure_reason": "signature_mismatch"}
            await self._session.commit()
            logger.warning("Upgrade payment signature verification failed", pass_id=str(pass_id), order_id=order_id)
            raise PaymentVerificationError("Payment verification failed")

        if transaction.status != TransactionStatusEnum.PENDING:
            raise InvalidStateError(f"Upgrade payment is {transaction.status.value}")

        expected_fee = tiers.compute_fee(record.tier, to_tier)
        if Decimal(transaction.amount) != expected_fee:
            raise InvalidUpgradeError("Pass tier changed since the upgrade was initiated; start a new upgrade")

        transaction.provider_payment_id = payment_id
        return await self._engine.apply(pass_id, to_tier, payment_id, transaction=transaction)


__all__ = ["UpgradeCheckoutService", "UpgradeInitiation"]
