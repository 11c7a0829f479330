#!/usr/bin/env python3
"""Quick health check for the summit pass API observability endpoints.

Usage:
    python tooling/scripts/check_observability.py \
        --base-url https://staging-api.example.com \
        --api-key "$ADMIN_API_KEY"

The script validates:
  * Readiness: the database is reachable and the claim sweep is not erroring.
  * Pass engine observability: upgrade and webhook failures stay within thresholds.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Any, Dict, Optional

import httpx


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Summit pass API observability checker")
    parser.add_argument(
        "--base-url",
        default="http://localhost:8000",
        help="Base URL of the summit pass API.",
    )
    parser.add_argument(
        "--api-key",
        default=None,
        help="Admin API key (required for the pass observability snapshot).",
    )
    for component in ("upgrade", "webhook", "sweep"):
        parser.add_argument(
            f"--max-{component}-failures",
            type=int,
            default=0,
            help=f"Tolerated {component} failures before the check fails.",
        )
    parser.add_argument(
        "--timeout",
        type=float,
        default=10.0,
        help="HTTP request timeout in seconds.",
    )
    return parser.parse_args()


async def _get_json(
    client: httpx.AsyncClient,
    path: str,
    *,
    headers: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    response = await client.get(path, headers=headers)
    response.raise_for_status()
    return response.json()


def _fail(message: str) -> None:
    print(f"[check-observability] FAIL {message}")
    sys.exit(1)


def _log_ok(message: str) -> None:
    print(f"[check-observability] OK {message}")


async def validate_readiness(client: httpx.AsyncClient) -> None:
    payload = await _get_json(client, "/api/v1/health/readyz")
    components = payload.get("components", {})
    database = components.get("database", {}).get("status")
    sweep = components.get("claim_sweep", {}).get("status")

    if database != "ready":
        _fail(f"Database component is {database}")
    if sweep == "error":
        detail = components.get("claim_sweep", {}).get("detail")
        _fail(f"Claim sweep worker is erroring: {detail}")

    _log_ok(f"Readiness OK (status={payload.get('status')}, claim_sweep={sweep})")


async def validate_pass_engine(
    client: httpx.AsyncClient,
    api_key: Optional[str],
    max_upgrade_failures: int,
    max_webhook_failures: int,
    max_sweep_failures: int,
) -> None:
    if not api_key:
        _log_ok("Skipping pass engine observability (no API key provided)")
        return

    payload = await _get_json(
        client,
        "/api/v1/observability/passes",
        headers={"X-API-Key": api_key},
    )
    upgrade_failures = int(payload.get("upgrades", {}).get("totals", {}).get("failed", 0))
    webhook_failures_map = payload.get("webhooks", {}).get("totals", {}).get("failed", {}) or {}
    webhook_failures = sum(int(value) for value in webhook_failures_map.values())
    sweep_failures = int(payload.get("sweeps", {}).get("totals", {}).get("failed", 0))
    claim_totals = payload.get("claims", {}).get("totals", {})

    if upgrade_failures > max_upgrade_failures:
        _fail(f"Upgrade failures {upgrade_failures} exceed threshold {max_upgrade_failures}")
    if webhook_failures > max_webhook_failures:
        _fail(f"Webhook failures {webhook_failures} exceed threshold {max_webhook_failures}")
    if sweep_failures > max_sweep_failures:
        _fail(f"Claim sweep failures {sweep_failures} exceed threshold {max_sweep_failures}")

    _log_ok(
        f"Pass engine observability OK (claims verified={claim_totals.get('verified', 0)}, "
        f"upgrade failures={upgrade_failures}, webhook failures={webhook_failures})"
    )


async def main() -> None:
    args = parse_args()

    async with httpx.AsyncClient(base_url=args.base_url, timeout=args.timeout) as client:
        await validate_readiness(client)
        await validate_pass_engine(
            client,
            api_key=args.api_key,
            max_upgrade_failures=args.max_upgrade_failures,
            max_webhook_failures=args.max_webhook_failures,
            max_sweep_failures=args.max_sweep_failures,
        )

    _log_ok("Observability checks completed successfully")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except httpx.HTTPStatusError as exc:
        _fail(f"HTTP {exc.response.status_code} while calling {exc.request.url}")
    except httpx.HTTPError as exc:
        _fail(f"Request failed: {exc}")
