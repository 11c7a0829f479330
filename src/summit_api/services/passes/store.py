"""Authoritative pass table access.

Every mutation of a ``Pass`` row goes through ``PassStore``. Methods flush but
never commit: the caller owns the unit of work and commits once the related
claim, upgrade or transaction rows are staged alongside the pass change.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

from loguru import logger
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from summit_api.models.passes import Pass, PassStatusEnum, PassTier
from summit_api.models.user import User

from .codes import generate_pass_code
from .exceptions import AlreadyHasPassError, ConflictError

_PASS_CODE_ATTEMPTS = 5


@dataclass(slots=True)
class BookingRefs:
    """External identifiers and provider detail attached to a new pass."""

    booking_id: str | None = None
    external_order_id: str | None = None
    external_ticket_id: str | None = None
    qr_payload: str | None = None
    ticket_details: dict[str, Any] | None = None
    document_url: str | None = None
    pass_code: str | None = None


class PassStore:
    """Queries and atomic mutations over the ``passes`` table."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, pass_id: UUID) -> Pass | None:
        return await self._session.get(Pass, pass_id)

    async def get_by_code(self, pass_code: str) -> Pass | None:
        stmt = select(Pass).where(Pass.pass_code == pass_code)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def lock(self, pass_id: UUID) -> Pass | None:
        """Load a pass with ``SELECT ... FOR UPDATE`` and refresh any cached state."""

        stmt = (
            select(Pass)
            .where(Pass.id == pass_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def active_pass_for_user(self, user_id: UUID) -> Pass | None:
        stmt = select(Pass).where(Pass.user_id == user_id, Pass.status == PassStatusEnum.ACTIVE)
        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def list_for_user(self, user_id: UUID) -> list[Pass]:
        stmt = select(Pass).where(Pass.user_id == user_id).order_by(Pass.created_at.desc())
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def find_by_booking_identifier(self, value: str) -> Pass | None:
        """Match a booking id against booking id, external order id or pass code."""

        stmt = (
            select(Pass)
            .where(
                or_(
                    Pass.booking_id == value,
                    Pass.external_order_id == value,
                    Pass.pass_code == value,
                )
            )
            .order_by(Pass.created_at.asc())
        )
        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def find_by_external_order_id(self, order_id: str) -> Pass | None:
        stmt = select(Pass).where(Pass.external_order_id == order_id).order_by(Pass.created_at.asc())
        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def list_by_external_order_id(self, order_id: str) -> list[Pass]:
        stmt = select(Pass).where(Pass.external_order_id == order_id)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def find_by_ticket_fragment(self, fragment: str) -> Pass | None:
        """Match a possibly truncated ticket number inside booking ids or pass codes."""

        stmt = (
            select(Pass)
            .where(
                or_(
                    Pass.booking_id.contains(fragment, autoescape=True),
                    Pass.pass_code.contains(fragment, autoescape=True),
                )
            )
            .order_by(Pass.created_at.asc())
        )
        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def find_by_qr_payload(self, payload: str) -> Pass | None:
        stmt = select(Pass).where(Pass.qr_payload == payload).order_by(Pass.created_at.asc())
        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def find_by_external_ticket_id(self, ticket_id: str) -> Pass | None:
        stmt = select(Pass).where(Pass.external_ticket_id == ticket_id)
        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def create_active_pass(
        self,
        user: User,
        tier: PassTier,
        price: Decimal,
        refs: BookingRefs | None = None,
    ) -> Pass:
        """Stage a new active pass for ``user``.

        Raises ``AlreadyHasPassError`` when the user already holds an active
        pass. A concurrent insert that slips past the check is caught by the
        partial unique index; the session is rolled back in that case.
        """

        user_id = user.id
        existing = await self.active_pass_for_user(user_id)
        if existing is not None:
            raise AlreadyHasPassError()

        refs = refs or BookingRefs()
        pass_code = refs.pass_code or await self._unique_pass_code()
        now = datetime.now(timezone.utc)
        record = Pass(
            pass_code=pass_code,
            user_id=user_id,
            tier=tier,
            price=Decimal(price),
            status=PassStatusEnum.ACTIVE,
            booking_id=refs.booking_id,
            external_order_id=refs.external_order_id,
            external_ticket_id=refs.external_ticket_id,
            qr_payload=refs.qr_payload,
            ticket_details=refs.ticket_details,
            document_url=refs.document_url,
            purchased_at=now,
        )
        self._session.add(record)
        try:
            await self._session.flush()
        except IntegrityError as error:
            await self._session.rollback()
            logger.warning("Active pass insert rejected by store", user_id=str(user_id), tier=tier.value)
            raise AlreadyHasPassError() from error

        logger.info(
            "Staged active pass",
            pass_id=str(record.id),
            pass_code=pass_code,
            user_id=str(user_id),
            tier=tier.value,
        )
        return record

    async def transfer_ownership(self, record: Pass, new_user: User) -> Pass:
        """Repoint ownership of ``record``; legitimacy is checked by the caller."""

        pass_id = record.id
        previous_owner = record.user_id
        new_owner = new_user.id
        record.user_id = new_owner
        await self._flush_guarded(pass_id)
        logger.info(
            "Transferred pass ownership",
            pass_id=str(pass_id),
            from_user_id=str(previous_owner),
            to_user_id=str(new_owner),
        )
        return record

    async def mutate_tier(
        self,
        record: Pass,
        new_tier: PassTier,
        new_price: Decimal,
        *,
        upgraded_at: datetime | None = None,
    ) -> Pass:
        """Move a pass to ``new_tier`` in place. Only the upgrade engine calls this."""

        pass_id = record.id
        current_tier = record.tier
        if record.original_tier is None:
            record.original_tier = current_tier
        record.upgraded_from = current_tier
        record.tier = new_tier
        record.price = Decimal(new_price)
        record.upgraded_at = upgraded_at or datetime.now(timezone.utc)
        await self._flush_guarded(pass_id)
        return record

    async def mark_status(self, record: Pass, status: PassStatusEnum) -> Pass:
        pass_id = record.id
        if record.status == status:
            return record
        record.status = status
        await self._flush_guarded(pass_id)
        logger.info("Updated pass status", pass_id=str(pass_id), status=status.value)
        return record

    async def _flush_guarded(self, pass_id: UUID) -> None:
        try:
            await self._session.flush()
        except StaleDataError as error:
            await self._session.rollback()
            logger.warning("Concurrent pass mutation detected", pass_id=str(pass_id))
            raise ConflictError("Pass was modified by another request; retry the operation") from error
        except IntegrityError as error:
            await self._session.rollback()
            logger.warning("Pass mutation violated a store constraint", pass_id=str(pass_id))
            raise AlreadyHasPassError(
                "The target user already holds an active pass"
            ) from error

    async def _unique_pass_code(self) -> str:
        for _ in range(_PASS_CODE_ATTEMPTS):
            candidate = generate_pass_code()
            if await self.get_by_code(candidate) is None:
                return candidate
        raise ConflictError("Unable to allocate a unique pass code")


__all__ = ["BookingRefs", "PassStore"]
