"""Resolve pending claims against issued passes.

Strategies run in a fixed order and the first candidate found ends the
search, even when the ownership check on that candidate then fails.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Sequence

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from summit_api.core.logging import audit_log
from summit_api.models.claims import ClaimStatusEnum, PendingClaim
from summit_api.models.passes import Pass, PassStatusEnum
from summit_api.models.user import User, normalize_email
from summit_api.observability.tracing import pass_span
from summit_api.services.passes.exceptions import ConflictError, TransientStoreError
from summit_api.services.passes.store import PassStore

from .identifiers import ClaimIdentifiers, IdentifierKind

MatchStrategy = Callable[[PassStore, ClaimIdentifiers], Awaitable[Pass | None]]


async def match_booking_id(store: PassStore, identifiers: ClaimIdentifiers) -> Pass | None:
    if not identifiers.booking_id:
        return None
    return await store.find_by_booking_identifier(identifiers.booking_id)


async def match_order_id(store: PassStore, identifiers: ClaimIdentifiers) -> Pass | None:
    if not identifiers.order_id:
        return None
    return await store.find_by_external_order_id(identifiers.order_id)


async def match_ticket_number(store: PassStore, identifiers: ClaimIdentifiers) -> Pass | None:
    # Scanned documents often carry truncated ticket numbers.
    if not identifiers.ticket_number:
        return None
    return await store.find_by_ticket_fragment(identifiers.ticket_number)


async def match_qr_payload(store: PassStore, identifiers: ClaimIdentifiers) -> Pass | None:
    if not identifiers.qr_payload:
        return None
    return await store.find_by_qr_payload(identifiers.qr_payload)


DEFAULT_STRATEGIES: tuple[tuple[IdentifierKind, MatchStrategy], ...] = (
    (IdentifierKind.BOOKING_ID, match_booking_id),
    (IdentifierKind.ORDER_ID, match_order_id),
    (IdentifierKind.TICKET_NUMBER, match_ticket_number),
    (IdentifierKind.QR_PAYLOAD, match_qr_payload),
)


@dataclass(slots=True)
class MatchResult:
    verified: bool
    pass_record: Pass | None = None
    matched_by: IdentifierKind | None = None
    transferred: bool = False
    reason: str | None = None


def identifiers_for_claim(claim: PendingClaim) -> ClaimIdentifiers:
    return ClaimIdentifiers(
        booking_id=claim.booking_id,
        order_id=claim.external_order_id,
        ticket_number=claim.ticket_number,
        qr_payload=claim.qr_payload,
    )


async def find_candidate(
    store: PassStore,
    identifiers: ClaimIdentifiers,
    strategies: Sequence[tuple[IdentifierKind, MatchStrategy]] = DEFAULT_STRATEGIES,
) -> tuple[Pass | None, IdentifierKind | None]:
    """Fold over ``strategies`` and return the first candidate found."""

    for kind, strategy in strategies:
        candidate = await strategy(store, identifiers)
        if candidate is not None:
            return candidate, kind
    return None, None


class ClaimMatcher:
    """Match a pending claim and, on success, verify it in one commit."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        store: PassStore | None = None,
        strategies: Sequence[tuple[IdentifierKind, MatchStrategy]] = DEFAULT_STRATEGIES,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session = session
        self._store = store or PassStore(session)
        self._strategies = tuple(strategies)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def match(self, claim: PendingClaim) -> MatchResult:
        """Attempt to resolve ``claim``.

        Verified claims are returned as-is without touching the store. A
        pending claim whose candidate belongs to the claimant, or to a user
        with the claimant's email, becomes verified together with any
        ownership transfer. Store conflicts surface as ``TransientStoreError``
        after the session has been rolled back.
        """

        with pass_span("pass_claim.match", claim_id=claim.id):
            return await self._match(claim)

    async def _match(self, claim: PendingClaim) -> MatchResult:
        claim_id = claim.id
        claimant_id = claim.user_id
        claim_email = normalize_email(claim.email or "")

        if claim.status == ClaimStatusEnum.VERIFIED:
            pass_record = await self._store.get(claim.verified_pass_id) if claim.verified_pass_id else None
            return MatchResult(verified=pass_record is not None, pass_record=pass_record, reason="already_verified")
        if claim.status != ClaimStatusEnum.PENDING:
            return MatchResult(verified=False, reason=f"claim_{claim.status.value}")

        candidate, matched_by = await find_candidate(
            self._store, identifiers_for_claim(claim), self._strategies
        )
        if candidate is None:
            logger.info("No pass matched claim", claim_id=str(claim_id))
            return MatchResult(verified=False, reason="no_match")

        pass_id = candidate.id
        owner_id = candidate.user_id
        if candidate.status != PassStatusEnum.ACTIVE:
            logger.info(
                "Matched pass is not active",
                claim_id=str(claim_id),
                pass_id=str(pass_id),
                status=candidate.status.value,
            )
            return MatchResult(verified=False, matched_by=matched_by, reason="pass_not_active")

        transferred = False
        if owner_id != claimant_id:
            owner = await self._session.get(User, owner_id)
            owner_email = normalize_email(owner.email) if owner and owner.email else None
            if not owner_email or owner_email != claim_email:
                audit_log(
                    "pass_claim.ownership_conflict",
                    claim_id=str(claim_id),
                    pass_id=str(pass_id),
                    claimant_user_id=str(claimant_id),
                    owner_user_id=str(owner_id),
                    matched_by=matched_by.value if matched_by else None,
                )
                return MatchResult(verified=False, matched_by=matched_by, reason="ownership_conflict")

            claimant = await self._session.get(User, claimant_id)
            if claimant is None:
                return MatchResult(verified=False, matched_by=matched_by, reason="claimant_missing")
            locked = await self._store.lock(pass_id)
            if locked is None or locked.user_id != owner_id:
                raise TransientStoreError("Matched pass changed before ownership transfer")
            try:
                candidate = await self._store.transfer_ownership(locked, claimant)
            except ConflictError as error:
                raise TransientStoreError(str(error)) from error
            transferred = True
            audit_log(
                "pass.ownership_transferred",
                claim_id=str(claim_id),
                pass_id=str(pass_id),
                from_user_id=str(owner_id),
                to_user_id=str(claimant_id),
            )

        claim.status = ClaimStatusEnum.VERIFIED
        claim.verified_at = self._clock()
        claim.verified_pass_id = pass_id
        await self._session.commit()

        logger.info(
            "Claim verified",
            claim_id=str(claim_id),
            pass_id=str(pass_id),
            matched_by=matched_by.value if matched_by else None,
            transferred=transferred,
        )
        return MatchResult(
            verified=True,
            pass_record=candidate,
            matched_by=matched_by,
            transferred=transferred,
        )


__all__ = [
    "ClaimMatcher",
    "DEFAULT_STRATEGIES",
    "MatchResult",
    "MatchStrategy",
    "find_candidate",
    "identifiers_for_claim",
    "match_booking_id",
    "match_order_id",
    "match_qr_payload",
    "match_ticket_number",
]
