"""Observability endpoints for pass claim, upgrade and webhook flows."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from summit_api.api.dependencies.security import require_admin_api_key
from summit_api.observability.passes import get_pass_observability_store


router = APIRouter(prefix="/observability", tags=["Observability"])


@router.get(
    "/passes",
    dependencies=[Depends(require_admin_api_key)],
    summary="Pass engine observability snapshot",
)
async def get_pass_snapshot() -> dict[str, object]:
    """Aggregated claim, upgrade, webhook and sweep counters (requires admin API key)."""
    return get_pass_observability_store().snapshot().as_dict()
