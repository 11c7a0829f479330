"""Pending claim state machine: submit, poll, cancel and expire."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from uuid import UUID

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from summit_api.core.settings import settings
from summit_api.models.claims import ClaimStatusEnum, PendingClaim
from summit_api.models.passes import Pass
from summit_api.models.user import User, normalize_email
from summit_api.observability.passes import get_pass_observability_store
from summit_api.services.passes.exceptions import (
    AlreadyHasPassError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    TransientStoreError,
)
from summit_api.services.passes.store import PassStore

from .identifiers import ClaimIdentifiers
from .matcher import ClaimMatcher

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _ensure_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(slots=True)
class ClaimResolution:
    """A claim together with the pass it resolved to, if any."""

    claim: PendingClaim
    pass_record: Pass | None = None

    @property
    def status(self) -> ClaimStatusEnum:
        return self.claim.status

    @property
    def verified(self) -> bool:
        return self.claim.status == ClaimStatusEnum.VERIFIED

    @property
    def message(self) -> str:
        if self.claim.status == ClaimStatusEnum.VERIFIED:
            return "Pass verified successfully"
        if self.claim.status == ClaimStatusEnum.EXPIRED:
            return "Your claim expired before a matching pass was found. Submit a new claim or contact support."
        if self.claim.status == ClaimStatusEnum.CANCELLED:
            return "Claim cancelled"
        return "Claim submitted. We will keep checking for your pass until the claim expires."


class ClaimLifecycleManager:
    """Owns ``pending -> verified | expired | cancelled`` transitions for claims."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        clock: Clock | None = None,
        matcher: ClaimMatcher | None = None,
        expiry: timedelta | None = None,
    ) -> None:
        self._session = session
        self._clock = clock or _utcnow
        self._store = PassStore(session)
        self._matcher = matcher or ClaimMatcher(session, store=self._store, clock=self._clock)
        self._expiry = expiry or timedelta(hours=settings.claim_expiry_hours)
        self._observability = get_pass_observability_store()

    async def submit(
        self,
        user: User,
        identifiers: ClaimIdentifiers,
        *,
        email: str | None = None,
        full_name: str | None = None,
        requested_tier: str | None = None,
        document_url: str | None = None,
        extracted_data: dict[str, Any] | None = None,
    ) -> ClaimResolution:
        """Record a claim and try to resolve it immediately.

        Raises ``AlreadyHasPassError`` when the user holds an active pass. A
        second submission for the same booking id returns the existing
        pending claim unchanged.
        """

        user_id = user.id
        claim_email = normalize_email(email or user.email)

        if await self._store.active_pass_for_user(user_id) is not None:
            raise AlreadyHasPassError("You already have a pass. Only one pass per user is allowed.")

        if identifiers.booking_id:
            existing = await self._pending_for_booking(user_id, identifiers.booking_id)
            if existing is not None:
                if not self._is_overdue(existing):
                    logger.info(
                        "Returning existing pending claim",
                        claim_id=str(existing.id),
                        user_id=str(user_id),
                    )
                    self._observability.record_claim("duplicate")
                    return ClaimResolution(claim=existing)
                await self._expire(existing.id)

        now = self._clock()
        claim = PendingClaim(
            user_id=user_id,
            email=claim_email,
            full_name=full_name or user.full_name,
            requested_tier=requested_tier,
            booking_id=identifiers.booking_id,
            external_order_id=identifiers.order_id,
            ticket_number=identifiers.ticket_number,
            qr_payload=identifiers.qr_payload,
            document_url=document_url,
            extracted_data=extracted_data,
            status=ClaimStatusEnum.PENDING,
            created_at=now,
            expires_at=now + self._expiry,
        )
        self._session.add(claim)
        try:
            await self._session.commit()
        except IntegrityError:
            await self._session.rollback()
            logger.warning("Detected race when creating pending claim", user_id=str(user_id))
            existing = await self._pending_for_booking(user_id, identifiers.booking_id or "")
            if existing is None:
                raise
            self._observability.record_claim("duplicate")
            return ClaimResolution(claim=existing)

        claim_id = claim.id
        logger.info(
            "Pending claim submitted",
            claim_id=str(claim_id),
            user_id=str(user_id),
            identifier=identifiers.primary.kind.value,
            expires_at=claim.expires_at.isoformat(),
        )
        self._observability.record_claim("submitted")
        return await self._attempt_match(claim_id)

    async def get_status(self, claim_id: UUID) -> ClaimResolution:
        """Return the claim, expiring it lazily or re-running the matcher once."""

        claim = await self._session.get(PendingClaim, claim_id)
        if claim is None:
            raise NotFoundError("Claim not found")

        if claim.status == ClaimStatusEnum.VERIFIED:
            return await self._verified_resolution(claim)
        if claim.status != ClaimStatusEnum.PENDING:
            return ClaimResolution(claim=claim)
        if self._is_overdue(claim):
            claim = await self._expire(claim_id)
            return ClaimResolution(claim=claim)
        return await self._attempt_match(claim_id)

    async def list_for_user(self, user: User) -> list[ClaimResolution]:
        """Pending and verified claims for ``user``, newest first."""

        user_id = user.id
        stmt = (
            select(PendingClaim.id)
            .where(
                PendingClaim.user_id == user_id,
                PendingClaim.status.in_([ClaimStatusEnum.PENDING, ClaimStatusEnum.VERIFIED]),
            )
            .order_by(PendingClaim.created_at.desc())
        )
        claim_ids = list((await self._session.execute(stmt)).scalars().all())

        resolutions: list[ClaimResolution] = []
        for claim_id in claim_ids:
            resolution = await self.get_status(claim_id)
            if resolution.status in (ClaimStatusEnum.PENDING, ClaimStatusEnum.VERIFIED):
                resolutions.append(resolution)
        return resolutions

    async def cancel(self, claim_id: UUID, requesting_user: User) -> PendingClaim:
        claim = await self._session.get(PendingClaim, claim_id)
        if claim is None:
            raise NotFoundError("Claim not found")
        if claim.user_id != requesting_user.id:
            raise ForbiddenError("You can only cancel your own claims")
        if claim.status != ClaimStatusEnum.PENDING:
            raise InvalidStateError(f"Only pending claims can be cancelled (claim is {claim.status.value})")

        stmt = (
            update(PendingClaim)
            .where(PendingClaim.id == claim_id, PendingClaim.status == ClaimStatusEnum.PENDING)
            .values(status=ClaimStatusEnum.CANCELLED, cancelled_at=self._clock())
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        await self._session.commit()
        if result.rowcount == 0:
            raise InvalidStateError("Claim is no longer pending")

        claim = await self._reload(claim_id)
        logger.info("Pending claim cancelled", claim_id=str(claim_id), user_id=str(requesting_user.id))
        self._observability.record_claim("cancelled")
        return claim

    async def sweep_expired(self) -> int:
        """Move every overdue pending claim to ``expired``; returns the count."""

        now = self._clock()
        stmt = (
            update(PendingClaim)
            .where(PendingClaim.status == ClaimStatusEnum.PENDING, PendingClaim.expires_at < now)
            .values(status=ClaimStatusEnum.EXPIRED)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        await self._session.commit()
        expired = result.rowcount or 0
        if expired:
            self._observability.record_claim("expired", expired)
        logger.info("Expired pending claims", expired=expired, cutoff=now.isoformat())
        return expired

    async def _attempt_match(self, claim_id: UUID) -> ClaimResolution:
        claim = await self._reload(claim_id)
        try:
            result = await self._matcher.match(claim)
        except (TransientStoreError, SQLAlchemyError) as error:
            await self._session.rollback()
            logger.warning(
                "Claim matching failed; claim stays pending",
                claim_id=str(claim_id),
                error=str(error),
            )
            self._observability.record_claim("transient_error")
            return ClaimResolution(claim=await self._reload(claim_id))

        if result.verified:
            self._observability.record_claim("verified")
            return ClaimResolution(claim=claim, pass_record=result.pass_record)
        if result.reason == "ownership_conflict":
            self._observability.record_claim("ownership_conflict")
        return ClaimResolution(claim=claim)

    async def _verified_resolution(self, claim: PendingClaim) -> ClaimResolution:
        pass_record = None
        if claim.verified_pass_id is not None:
            pass_record = await self._store.get(claim.verified_pass_id)
        return ClaimResolution(claim=claim, pass_record=pass_record)

    async def _expire(self, claim_id: UUID) -> PendingClaim:
        stmt = (
            update(PendingClaim)
            .where(PendingClaim.id == claim_id, PendingClaim.status == ClaimStatusEnum.PENDING)
            .values(status=ClaimStatusEnum.EXPIRED)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        await self._session.commit()
        if result.rowcount:
            logger.info("Pending claim expired", claim_id=str(claim_id))
            self._observability.record_claim("expired")
        return await self._reload(claim_id)

    async def _pending_for_booking(self, user_id: UUID, booking_id: str) -> PendingClaim | None:
        stmt = select(PendingClaim).where(
            PendingClaim.user_id == user_id,
            PendingClaim.booking_id == booking_id,
            PendingClaim.status == ClaimStatusEnum.PENDING,
        )
        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def _reload(self, claim_id: UUID) -> PendingClaim:
        stmt = (
            select(PendingClaim)
            .where(PendingClaim.id == claim_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one()

    def _is_overdue(self, claim: PendingClaim) -> bool:
        return _ensure_aware(self._clock()) > _ensure_aware(claim.expires_at)


__all__ = ["ClaimLifecycleManager", "ClaimResolution"]
