"""Tier upgrade eligibility, fee computation and atomic application."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from summit_api.models.passes import Pass, PassStatusEnum, PassTier
from summit_api.models.transactions import PassTransaction, TransactionStatusEnum
from summit_api.models.upgrades import UpgradeRecord, UpgradeStatusEnum
from summit_api.observability.passes import get_pass_observability_store
from summit_api.observability.tracing import pass_span
from summit_api.services.passes import tiers
from summit_api.services.passes.exceptions import (
    ConflictError,
    InvalidUpgradeError,
    NotFoundError,
)
from summit_api.services.passes.store import PassStore


@dataclass(slots=True)
class UpgradeOption:
    tier: PassTier
    price: Decimal
    fee: Decimal


@dataclass(slots=True)
class Eligibility:
    can_upgrade: bool
    reason: str | None = None
    pass_record: Pass | None = None
    options: list[UpgradeOption] = field(default_factory=list)


@dataclass(slots=True)
class UpgradeOutcome:
    pass_record: Pass
    record: UpgradeRecord


def list_upgrade_options(current_tier: PassTier | str) -> list[UpgradeOption]:
    """Every tier strictly above ``current_tier`` with its price and fee."""

    source = tiers.try_parse_tier(current_tier)
    if source is None:
        return []
    return [
        UpgradeOption(
            tier=target,
            price=tiers.tier_price(target),
            fee=tiers.compute_fee(source, target),
        )
        for target in tiers.tiers_above(source)
    ]


is_valid_upgrade = tiers.is_valid_upgrade
compute_fee = tiers.compute_fee


class UpgradeEngine:
    """Apply tier upgrades to passes through the pass store."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        store: PassStore | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session = session
        self._store = store or PassStore(session)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._observability = get_pass_observability_store()

    async def check_eligibility(self, pass_id: UUID) -> Eligibility:
        record = await self._store.get(pass_id)
        return self.evaluate(record)

    def evaluate(self, record: Pass | None) -> Eligibility:
        if record is None:
            return Eligibility(can_upgrade=False, reason="Pass not found")
        if record.status != PassStatusEnum.ACTIVE:
            return Eligibility(can_upgrade=False, reason="Pass is not active", pass_record=record)
        current = tiers.try_parse_tier(record.tier)
        if current is None:
            return Eligibility(
                can_upgrade=False,
                reason=f"Invalid pass tier: {record.tier}",
                pass_record=record,
            )
        if tiers.is_top_tier(current):
            return Eligibility(can_upgrade=False, reason="Already at highest tier", pass_record=record)
        return Eligibility(can_upgrade=True, pass_record=record, options=list_upgrade_options(current))

    async def apply(
        self,
        pass_id: UUID,
        to_tier: PassTier,
        payment_reference: str | None,
        *,
        transaction: PassTransaction | None = None,
    ) -> UpgradeOutcome:
        """Upgrade ``pass_id`` to ``to_tier`` in a single commit.

        The pass row is locked and the upgrade re-validated against its
        current tier. The history record, the tier change and the linked
        transaction commit together; any failure rolls all of them back.
        """

        with pass_span("pass_upgrade.apply", pass_id=pass_id, to_tier=to_tier.value):
            return await self._apply(pass_id, to_tier, payment_reference, transaction)

    async def _apply(
        self,
        pass_id: UUID,
        to_tier: PassTier,
        payment_reference: str | None,
        transaction: PassTransaction | None,
    ) -> UpgradeOutcome:
        transaction_id = transaction.id if transaction is not None else None
        try:
            record = await self._store.lock(pass_id)
            if record is None:
                raise NotFoundError("Pass not found")
            if record.status != PassStatusEnum.ACTIVE:
                raise InvalidUpgradeError("Only active passes can be upgraded")

            from_tier = record.tier
            if not tiers.is_valid_upgrade(from_tier, to_tier):
                raise InvalidUpgradeError(
                    f"Cannot upgrade from {from_tier.value} to {to_tier.value}; "
                    "the target tier must be higher than the current tier"
                )

            fee = tiers.compute_fee(from_tier, to_tier)
            new_price = tiers.tier_price(to_tier)
            upgrade = UpgradeRecord(
                pass_id=record.id,
                user_id=record.user_id,
                from_tier=from_tier,
                to_tier=to_tier,
                fee=fee,
                original_price=Decimal(record.price or 0),
                new_price=new_price,
                status=UpgradeStatusEnum.COMPLETED,
                payment_reference=payment_reference,
                created_at=self._clock(),
            )
            self._session.add(upgrade)
            await self._session.flush()

            await self._store.mutate_tier(record, to_tier, new_price, upgraded_at=upgrade.created_at)

            if transaction is not None:
                transaction.upgrade_id = upgrade.id
                transaction.pass_id = record.id
                transaction.status = TransactionStatusEnum.COMPLETED
                if payment_reference and not transaction.provider_payment_id:
                    transaction.provider_payment_id = payment_reference

            await self._session.commit()
        except (InvalidUpgradeError, NotFoundError, ConflictError) as error:
            await self._session.rollback()
            self._observability.record_upgrade_failure(type(error).__name__)
            logger.warning(
                "Pass upgrade rejected",
                pass_id=str(pass_id),
                to_tier=to_tier.value,
                error=str(error),
            )
            raise
        except StaleDataError as error:
            await self._session.rollback()
            self._observability.record_upgrade_failure("StaleDataError")
            raise ConflictError("Pass was modified by another request; retry the upgrade") from error
        except SQLAlchemyError:
            await self._session.rollback()
            self._observability.record_upgrade_failure("store_error")
            logger.exception("Pass upgrade failed", pass_id=str(pass_id), to_tier=to_tier.value)
            raise

        logger.info(
            "Pass upgraded",
            pass_id=str(pass_id),
            upgrade_id=str(upgrade.id),
            from_tier=from_tier.value,
            to_tier=to_tier.value,
            fee=str(fee),
            transaction_id=str(transaction_id) if transaction_id else None,
        )
        self._observability.record_upgrade_success(str(pass_id))
        return UpgradeOutcome(pass_record=record, record=upgrade)

    async def history(self, pass_id: UUID) -> list[UpgradeRecord]:
        stmt = (
            select(UpgradeRecord)
            .where(UpgradeRecord.pass_id == pass_id)
            .order_by(UpgradeRecord.created_at.desc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())


__all__ = [
    "Eligibility",
    "UpgradeEngine",
    "UpgradeOption",
    "UpgradeOutcome",
    "compute_fee",
    "is_valid_upgrade",
    "list_upgrade_options",
]
