"""Seed sample users, passes and a pending claim for local development."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger

ROOT = Path(__file__).resolve().parents[2]
API_SRC = ROOT / "src"
if str(API_SRC) not in sys.path:
    sys.path.insert(0, str(API_SRC))

from summit_api.db.session import async_session  # noqa: E402
from summit_api.models.passes import PassTier  # noqa: E402
from summit_api.services.claims import ClaimIdentifiers, ClaimLifecycleManager  # noqa: E402
from summit_api.services.identity import IdentityResolver  # noqa: E402
from summit_api.services.passes import BookingRefs, PassPurchaseService, PassStore  # noqa: E402

_SAMPLE_PASSES = (
    ("pixel@example.com", PassTier.PIXEL, "KON-BK-1001"),
    ("silicon@example.com", PassTier.SILICON, "KON-BK-1002"),
    ("student@example.com", PassTier.FREE, None),
)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed development passes and claims")
    parser.add_argument(
        "--claimant-email",
        default="claimant@example.com",
        help="Email of the user who receives an unmatched pending claim",
    )
    return parser.parse_args()


async def _seed(claimant_email: str) -> None:
    async with async_session() as session:
        resolver = IdentityResolver(session)
        store = PassStore(session)
        purchases = PassPurchaseService(session)

        for email, tier, booking_id in _SAMPLE_PASSES:
            user = await resolver.resolve(None, email)
            if await store.active_pass_for_user(user.id) is not None:
                logger.info("Pass already seeded", email=email)
                continue
            record = await purchases.issue_pass(user, tier, refs=BookingRefs(booking_id=booking_id))
            logger.info("Seeded pass", email=email, pass_code=record.pass_code, tier=tier.value)

        claimant = await resolver.resolve(None, claimant_email)
        resolution = await ClaimLifecycleManager(session).submit(
            claimant,
            ClaimIdentifiers(booking_id="KON-BK-PENDING"),
            requested_tier=PassTier.QUANTUM.value,
        )
        logger.info("Seeded pending claim", claim_id=str(resolution.claim.id), status=resolution.status.value)


def main() -> int:
    args = _parse_args()
    asyncio.run(_seed(args.claimant_email))
    return 0


if __name__ == "__main__":
    sys.exit(main())
