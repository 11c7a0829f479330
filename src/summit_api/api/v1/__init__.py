from fastapi import APIRouter

from .endpoints import (
    claims,
    health,
    observability,
    passes,
    payments,
    upgrades,
    users,
    webhooks,
)

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(users.router)
router.include_router(passes.router)
router.include_router(claims.router)
router.include_router(upgrades.router)
router.include_router(payments.router)
router.include_router(webhooks.router)
router.include_router(observability.router)
