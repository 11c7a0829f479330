"""Pass tier upgrades."""

from .engine import (
    Eligibility,
    UpgradeEngine,
    UpgradeOption,
    UpgradeOutcome,
    compute_fee,
    is_valid_upgrade,
    list_upgrade_options,
)
from .checkout import UpgradeCheckoutService, UpgradeInitiation

__all__ = [
    "Eligibility",
    "UpgradeCheckoutService",
    "UpgradeEngine",
    "UpgradeInitiation",
    "UpgradeOption",
    "UpgradeOutcome",
    "compute_fee",
    "is_valid_upgrade",
    "list_upgrade_options",
]
