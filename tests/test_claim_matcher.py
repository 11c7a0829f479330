from datetime import timedelta

import pytest
from loguru import logger

from summit_api.models.claims import ClaimStatusEnum, PendingClaim
from summit_api.models.passes import PassStatusEnum
from summit_api.services.claims import ClaimMatcher
from summit_api.services.claims.identifiers import ClaimIdentifiers, IdentifierKind
from summit_api.services.claims.matcher import find_candidate
from summit_api.services.passes import PassStore
from summit_api.services.passes.exceptions import MissingIdentifierError

from factories import create_pass, create_user


async def _pending_claim(session, user, clock, **identifiers) -> PendingClaim:
    claim = PendingClaim(
        user_id=user.id,
        email=user.email,
        status=ClaimStatusEnum.PENDING,
        created_at=clock(),
        expires_at=clock() + timedelta(hours=32),
        **identifiers,
    )
    session.add(claim)
    await session.commit()
    return claim


def test_identifiers_require_at_least_one_value():
    with pytest.raises(MissingIdentifierError):
        ClaimIdentifiers(booking_id="  ", order_id=None)

    identifiers = ClaimIdentifiers(order_id=" ORD-9 ", qr_payload="qr")
    assert identifiers.order_id == "ORD-9"
    assert identifiers.primary.kind == IdentifierKind.ORDER_ID
    assert [item.kind for item in identifiers.present()] == [IdentifierKind.ORDER_ID, IdentifierKind.QR_PAYLOAD]


@pytest.mark.asyncio
async def test_match_verifies_claim_for_own_pass(session_factory, clock):
    async with session_factory() as session:
        user = await create_user(session, "ada@example.com")
        record = await create_pass(session, user, pass_code="ESUMMIT-2026-AAAAA", booking_id="BK-1")
        claim = await _pending_claim(session, user, clock, booking_id="BK-1")

        result = await ClaimMatcher(session, clock=clock).match(claim)

        assert result.verified is True
        assert result.matched_by == IdentifierKind.BOOKING_ID
        assert result.transferred is False
        assert claim.status == ClaimStatusEnum.VERIFIED
        assert claim.verified_pass_id == record.id
        assert claim.verified_at == clock.now


@pytest.mark.asyncio
async def test_ownership_conflict_leaves_pass_and_claim_untouched(session_factory, clock):
    audit_events = []
    sink_id = logger.add(lambda message: audit_events.append(message.record["extra"]), level="INFO")
    try:
        async with session_factory() as session:
            owner = await create_user(session, "owner@example.com")
            claimant = await create_user(session, "claimant@example.com")
            record = await create_pass(session, owner, pass_code="ESUMMIT-2026-AAAAA", booking_id="BK-1")
            claim = await _pending_claim(session, claimant, clock, booking_id="BK-1")

            result = await ClaimMatcher(session, clock=clock).match(claim)

            assert result.verified is False
            assert result.reason == "ownership_conflict"
            assert claim.status == ClaimStatusEnum.PENDING
            stored = await PassStore(session).get(record.id)
            assert stored.user_id == owner.id
    finally:
        logger.remove(sink_id)

    assert any(extra.get("audit_event") == "pass_claim.ownership_conflict" for extra in audit_events)


@pytest.mark.asyncio
async def test_email_match_transfers_pass_to_claimant(session_factory, clock):
    async with session_factory() as session:
        imported = await create_user(session, "ada@example.com")
        record = await create_pass(session, imported, pass_code="ESUMMIT-2026-AAAAA", external_order_id="ORD-7")
        claimant = await create_user(session, "ada.auth@example.com", external_id="auth_ada")
        claim = await _pending_claim(session, claimant, clock, external_order_id="ORD-7")
        claim.email = "ADA@example.com"
        await session.commit()

        result = await ClaimMatcher(session, clock=clock).match(claim)

        assert result.verified is True
        assert result.transferred is True
        assert result.pass_record.user_id == claimant.id
        assert claim.verified_pass_id == record.id


@pytest.mark.asyncio
async def test_inactive_candidate_is_not_verified(session_factory, clock):
    async with session_factory() as session:
        user = await create_user(session, "ada@example.com")
        await create_pass(
            session,
            user,
            pass_code="ESUMMIT-2026-AAAAA",
            booking_id="BK-1",
            status=PassStatusEnum.REFUNDED,
        )
        claim = await _pending_claim(session, user, clock, booking_id="BK-1")

        result = await ClaimMatcher(session, clock=clock).match(claim)

        assert result.verified is False
        assert result.reason == "pass_not_active"
        assert claim.status == ClaimStatusEnum.PENDING


@pytest.mark.asyncio
async def test_strategies_fall_through_in_precedence_order(session_factory):
    async with session_factory() as session:
        user = await create_user(session, "ada@example.com")
        by_qr = await create_pass(session, user, pass_code="ESUMMIT-2026-QQQQQ", qr_payload="qr-data")
        other = await create_user(session, "bob@example.com")
        by_order = await create_pass(session, other, pass_code="ESUMMIT-2026-OOOOO", external_order_id="ORD-1")
        store = PassStore(session)

        candidate, kind = await find_candidate(
            store, ClaimIdentifiers(booking_id="missing", qr_payload="qr-data")
        )
        assert candidate.id == by_qr.id
        assert kind == IdentifierKind.QR_PAYLOAD

        candidate, kind = await find_candidate(
            store, ClaimIdentifiers(order_id="ORD-1", qr_payload="qr-data")
        )
        assert candidate.id == by_order.id
        assert kind == IdentifierKind.ORDER_ID


@pytest.mark.asyncio
async def test_no_candidate_keeps_claim_pending(session_factory, clock):
    async with session_factory() as session:
        user = await create_user(session, "ada@example.com")
        claim = await _pending_claim(session, user, clock, ticket_number="884213")

        result = await ClaimMatcher(session, clock=clock).match(claim)

        assert result.verified is False
        assert result.reason == "no_match"
        assert claim.status == ClaimStatusEnum.PENDING


@pytest.mark.asyncio
async def test_ownership_failure_on_first_candidate_ends_the_search(session_factory, clock):
    async with session_factory() as session:
        claimant = await create_user(session, "ada@example.com")
        stranger = await create_user(session, "bob@example.com")
        await create_pass(session, stranger, pass_code="ESUMMIT-2026-BBBBB", booking_id="BK-5")
        await create_pass(session, claimant, pass_code="ESUMMIT-2026-AAAAA", qr_payload="qr-ada")
        claim = await _pending_claim(session, claimant, clock, booking_id="BK-5", qr_payload="qr-ada")

        result = await ClaimMatcher(session, clock=clock).match(claim)

        assert result.verified is False
        assert result.reason == "ownership_conflict"
        assert result.matched_by == IdentifierKind.BOOKING_ID
        assert claim.status == ClaimStatusEnum.PENDING
        assert claim.verified_pass_id is None
