"""Background workers owned by the application lifespan."""

from .claim_expiry import ClaimExpirySweepWorker

__all__ = ["ClaimExpirySweepWorker"]
