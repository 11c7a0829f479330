from decimal import Decimal

import pytest
from sqlalchemy import func, select

from summit_api.models.passes import Pass, PassStatusEnum, PassTier
from summit_api.services.passes import BookingRefs, PassStore
from summit_api.services.passes.exceptions import AlreadyHasPassError

from factories import create_pass, create_user


@pytest.mark.asyncio
async def test_create_active_pass_generates_code_and_refs(session_factory):
    async with session_factory() as session:
        user = await create_user(session, "ada@example.com")
        store = PassStore(session)

        record = await store.create_active_pass(
            user,
            PassTier.SILICON,
            Decimal("499"),
            BookingRefs(booking_id="BK-1", external_order_id="ORD-1"),
        )
        await session.commit()

        assert record.pass_code.startswith("ESUMMIT-2026-")
        assert record.status == PassStatusEnum.ACTIVE
        assert record.booking_id == "BK-1"
        assert (await store.find_by_booking_identifier("ORD-1")).id == record.id
        assert (await store.find_by_booking_identifier(record.pass_code)).id == record.id


@pytest.mark.asyncio
async def test_one_active_pass_per_user(session_factory):
    async with session_factory() as session:
        user = await create_user(session, "ada@example.com")
        await create_pass(session, user, pass_code="ESUMMIT-2026-AAAAA")

        with pytest.raises(AlreadyHasPassError):
            await PassStore(session).create_active_pass(user, PassTier.QUANTUM, Decimal("999"))

        count = (
            await session.execute(select(func.count()).select_from(Pass).where(Pass.user_id == user.id))
        ).scalar_one()
        assert count == 1


@pytest.mark.asyncio
async def test_cancelled_pass_does_not_block_a_new_one(session_factory):
    async with session_factory() as session:
        user = await create_user(session, "ada@example.com")
        await create_pass(session, user, pass_code="ESUMMIT-2026-AAAAA", status=PassStatusEnum.CANCELLED)

        record = await PassStore(session).create_active_pass(user, PassTier.PIXEL, Decimal("299"))
        await session.commit()

        assert record.status == PassStatusEnum.ACTIVE


@pytest.mark.asyncio
async def test_ticket_fragment_matches_inside_booking_id(session_factory):
    async with session_factory() as session:
        user = await create_user(session, "ada@example.com")
        record = await create_pass(session, user, pass_code="ESUMMIT-2026-AAAAA", booking_id="KON-TKT-884213")
        store = PassStore(session)

        assert (await store.find_by_ticket_fragment("884213")).id == record.id
        assert await store.find_by_ticket_fragment("%") is None


@pytest.mark.asyncio
async def test_mutate_tier_keeps_original_tier(session_factory):
    async with session_factory() as session:
        user = await create_user(session, "ada@example.com")
        record = await create_pass(session, user, pass_code="ESUMMIT-2026-AAAAA", tier=PassTier.PIXEL)
        store = PassStore(session)

        await store.mutate_tier(record, PassTier.SILICON, Decimal("499"))
        await store.mutate_tier(record, PassTier.QUANTUM, Decimal("999"))
        await session.commit()

        assert record.tier == PassTier.QUANTUM
        assert record.original_tier == PassTier.PIXEL
        assert record.upgraded_from == PassTier.SILICON
        assert record.version == 3
