"""Expire overdue pending pass claims once.

Intended usage: schedule via cron when the in-process sweep worker is
disabled, or run by hand before reconciling claims.

Example:
    python tooling/scripts/run_claim_expiry_sweep.py --trigger cron
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Execute the pending claim expiry sweep once")
    parser.add_argument(
        "--trigger",
        default="manual",
        help="Label recorded in sweep metadata to describe the invocation source.",
    )
    return parser.parse_args()


async def _run(trigger: str) -> dict[str, int | str]:
    repo_root = Path(__file__).resolve().parents[2]
    api_src = repo_root / "src"
    if str(api_src) not in sys.path:
        sys.path.insert(0, str(api_src))

    from summit_api.core.settings import settings  # type: ignore import-position
    from summit_api.db.session import async_session  # type: ignore import-position
    from summit_api.workers import ClaimExpirySweepWorker  # type: ignore import-position

    worker = ClaimExpirySweepWorker(
        async_session,  # type: ignore[arg-type]
        interval_seconds=settings.claim_sweep_interval_seconds,
        trigger_label=settings.claim_sweep_trigger_label,
    )
    return await worker.run_once(triggered_by=trigger)


def main() -> int:
    args = parse_args()
    summary = asyncio.run(_run(args.trigger))
    logger.success(
        "Claim expiry sweep completed",
        expired=summary.get("expired", 0),
        trigger=args.trigger,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
