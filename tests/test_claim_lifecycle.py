from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from summit_api.models.claims import ClaimStatusEnum, PendingClaim
from summit_api.models.passes import PassTier
from summit_api.observability.passes import get_pass_observability_store
from summit_api.services.claims import ClaimLifecycleManager
from summit_api.services.claims.identifiers import ClaimIdentifiers
from summit_api.services.passes import PassStore
from summit_api.services.passes.exceptions import (
    AlreadyHasPassError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
)

from factories import create_pass, create_user


@pytest.mark.asyncio
async def test_submit_without_match_stays_pending_with_expiry(session_factory, clock):
    async with session_factory() as session:
        user = await create_user(session, "ada@example.com")
        manager = ClaimLifecycleManager(session, clock=clock)

        resolution = await manager.submit(user, ClaimIdentifiers(booking_id="BK-404"), requested_tier="Quantum Pass")

        assert resolution.status == ClaimStatusEnum.PENDING
        assert resolution.pass_record is None
        claim = resolution.claim
        assert claim.requested_tier == "Quantum Pass"
        assert claim.expires_at.replace(tzinfo=None) == (clock.now + timedelta(hours=32)).replace(tzinfo=None)


@pytest.mark.asyncio
async def test_submit_rejects_pass_holders_and_verifies_email_match(session_factory, clock):
    async with session_factory() as session:
        user = await create_user(session, "ada@example.com")
        record = await create_pass(session, user, pass_code="ESUMMIT-2026-AAAAA", booking_id="BK-1")
        manager = ClaimLifecycleManager(session, clock=clock)

        with pytest.raises(AlreadyHasPassError):
            await manager.submit(user, ClaimIdentifiers(booking_id="BK-1"))

        other = await create_user(session, "bob@example.com")
        imported = await create_user(session, "bob.import@example.com")
        await create_pass(session, imported, pass_code="ESUMMIT-2026-BBBBB", booking_id="BK-2")
        resolution = await manager.submit(other, ClaimIdentifiers(booking_id="BK-2"), email="bob.import@example.com")

        assert resolution.verified is True
        assert resolution.pass_record.user_id == other.id
        assert record.user_id == user.id


@pytest.mark.asyncio
async def test_duplicate_booking_returns_existing_pending_claim(session_factory, clock):
    async with session_factory() as session:
        user = await create_user(session, "ada@example.com")
        manager = ClaimLifecycleManager(session, clock=clock)

        first = await manager.submit(user, ClaimIdentifiers(booking_id="BK-9"))
        clock.advance(timedelta(minutes=5))
        second = await manager.submit(user, ClaimIdentifiers(booking_id="BK-9", qr_payload="other"))

        assert second.claim.id == first.claim.id
        assert second.claim.qr_payload is None
        count = (await session.execute(select(func.count()).select_from(PendingClaim))).scalar_one()
        assert count == 1
        totals = get_pass_observability_store().snapshot().as_dict()["claims"]["totals"]
        assert totals["duplicate"] == 1


@pytest.mark.asyncio
async def test_overdue_duplicate_is_expired_and_replaced(session_factory, clock):
    async with session_factory() as session:
        user = await create_user(session, "ada@example.com")
        manager = ClaimLifecycleManager(session, clock=clock)

        first = await manager.submit(user, ClaimIdentifiers(booking_id="BK-9"))
        first_id = first.claim.id
        clock.advance(timedelta(hours=33))
        second = await manager.submit(user, ClaimIdentifiers(booking_id="BK-9"))

        assert second.claim.id != first_id
        assert second.status == ClaimStatusEnum.PENDING
        old = await session.get(PendingClaim, first_id)
        assert old.status == ClaimStatusEnum.EXPIRED


@pytest.mark.asyncio
async def test_get_status_expires_after_window(session_factory, clock):
    async with session_factory() as session:
        user = await create_user(session, "ada@example.com")
        manager = ClaimLifecycleManager(session, clock=clock)
        claim_id = (await manager.submit(user, ClaimIdentifiers(booking_id="BK-late"))).claim.id

        clock.advance(timedelta(hours=32))
        assert (await manager.get_status(claim_id)).status == ClaimStatusEnum.PENDING

        clock.advance(timedelta(seconds=1))
        expired = await manager.get_status(claim_id)
        assert expired.status == ClaimStatusEnum.EXPIRED
        assert "expired" in expired.message

        # A pass showing up afterwards does not revive an expired claim.
        await create_pass(session, user, pass_code="ESUMMIT-2026-LLLLL", booking_id="BK-late")
        assert (await manager.get_status(claim_id)).status == ClaimStatusEnum.EXPIRED


@pytest.mark.asyncio
async def test_get_status_picks_up_pass_created_later(session_factory, clock):
    async with session_factory() as session:
        claimant = await create_user(session, "ada@example.com", external_id="auth_ada")
        manager = ClaimLifecycleManager(session, clock=clock)
        claim_id = (await manager.submit(claimant, ClaimIdentifiers(order_id="ORD-5"))).claim.id

        await create_pass(session, claimant, pass_code="ESUMMIT-2026-CCCCC", tier=PassTier.SILICON, external_order_id="ORD-5")
        clock.advance(timedelta(hours=2))

        first = await manager.get_status(claim_id)
        second = await manager.get_status(claim_id)

        assert first.verified is True
        assert second.verified is True
        assert second.pass_record.id == first.pass_record.id
        assert first.claim.verified_at == second.claim.verified_at


@pytest.mark.asyncio
async def test_get_status_unknown_claim(session_factory, clock):
    async with session_factory() as session:
        with pytest.raises(NotFoundError):
            await ClaimLifecycleManager(session, clock=clock).get_status(uuid4())


@pytest.mark.asyncio
async def test_cancel_rules(session_factory, clock):
    async with session_factory() as session:
        user = await create_user(session, "ada@example.com")
        stranger = await create_user(session, "eve@example.com")
        manager = ClaimLifecycleManager(session, clock=clock)
        claim_id = (await manager.submit(user, ClaimIdentifiers(ticket_number="T-1"))).claim.id

        with pytest.raises(ForbiddenError):
            await manager.cancel(claim_id, stranger)

        cancelled = await manager.cancel(claim_id, user)
        assert cancelled.status == ClaimStatusEnum.CANCELLED
        assert cancelled.cancelled_at is not None

        with pytest.raises(InvalidStateError):
            await manager.cancel(claim_id, user)


@pytest.mark.asyncio
async def test_list_for_user_hides_terminal_claims(session_factory, clock):
    async with session_factory() as session:
        user = await create_user(session, "ada@example.com")
        manager = ClaimLifecycleManager(session, clock=clock)
        keep = (await manager.submit(user, ClaimIdentifiers(booking_id="BK-keep"))).claim.id
        drop = (await manager.submit(user, ClaimIdentifiers(booking_id="BK-drop"))).claim.id
        await manager.cancel(drop, user)

        listed = await manager.list_for_user(user)

        assert [resolution.claim.id for resolution in listed] == [keep]


@pytest.mark.asyncio
async def test_sweep_expires_only_overdue_claims(session_factory, clock):
    async with session_factory() as session:
        user = await create_user(session, "ada@example.com")
        manager = ClaimLifecycleManager(session, clock=clock)
        old_id = (await manager.submit(user, ClaimIdentifiers(booking_id="BK-old"))).claim.id
        clock.advance(timedelta(hours=20))
        fresh_id = (await manager.submit(user, ClaimIdentifiers(booking_id="BK-new"))).claim.id
        clock.advance(timedelta(hours=13))

        assert await manager.sweep_expired() == 1
        assert await manager.sweep_expired() == 0

        old = await manager.get_status(old_id)
        fresh = await manager.get_status(fresh_id)
        assert old.status == ClaimStatusEnum.EXPIRED
        assert fresh.status == ClaimStatusEnum.PENDING


@pytest.mark.asyncio
async def test_sweep_counts_every_expired_claim(session_factory, clock):
    async with session_factory() as session:
        user = await create_user(session, "ada@example.com")
        manager = ClaimLifecycleManager(session, clock=clock)
        for booking_id in ("BK-1", "BK-2", "BK-3"):
            await manager.submit(user, ClaimIdentifiers(booking_id=booking_id))
        clock.advance(timedelta(hours=33))

        assert await manager.sweep_expired() == 3

    totals = get_pass_observability_store().snapshot().as_dict()["claims"]["totals"]
    assert totals["expired"] == 3


@pytest.mark.asyncio
async def test_store_failure_during_matching_leaves_claim_pending(session_factory, clock, monkeypatch):
    async def unavailable(self, value):
        raise OperationalError("SELECT passes", {}, Exception("database is locked"))

    monkeypatch.setattr(PassStore, "find_by_booking_identifier", unavailable)

    async with session_factory() as session:
        user = await create_user(session, "ada@example.com")
        other = await create_user(session, "bob@example.com")
        await create_pass(session, other, pass_code="ESUMMIT-2026-BBBBB", booking_id="BK-9")
        manager = ClaimLifecycleManager(session, clock=clock)

        submitted = await manager.submit(user, ClaimIdentifiers(booking_id="BK-9"))
        claim_id = submitted.claim.id
        assert submitted.status == ClaimStatusEnum.PENDING
        assert submitted.pass_record is None

        polled = await manager.get_status(claim_id)
        assert polled.status == ClaimStatusEnum.PENDING
        assert polled.pass_record is None

    totals = get_pass_observability_store().snapshot().as_dict()["claims"]["totals"]
    assert totals["transient_error"] == 2
