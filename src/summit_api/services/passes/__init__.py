"""Pass catalogue, storage and purchase services."""

from .store import BookingRefs, PassStore
from .purchases import PassPurchaseService, PurchaseOutcome

__all__ = ["BookingRefs", "PassPurchaseService", "PassStore", "PurchaseOutcome"]
