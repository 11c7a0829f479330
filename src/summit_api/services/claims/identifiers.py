"""Claim identifiers parsed once at the request boundary."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from summit_api.services.passes.exceptions import MissingIdentifierError


class IdentifierKind(str, Enum):
    BOOKING_ID = "booking_id"
    ORDER_ID = "order_id"
    TICKET_NUMBER = "ticket_number"
    QR_PAYLOAD = "qr_payload"


@dataclass(frozen=True, slots=True)
class ClaimIdentifier:
    kind: IdentifierKind
    value: str


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


@dataclass(frozen=True, slots=True)
class ClaimIdentifiers:
    """Identifiers a claimant supplied for an externally purchased pass.

    Construction guarantees at least one identifier is present; blank strings
    count as absent.
    """

    booking_id: str | None = None
    order_id: str | None = None
    ticket_number: str | None = None
    qr_payload: str | None = None

    def __post_init__(self) -> None:
        for name in ("booking_id", "order_id", "ticket_number", "qr_payload"):
            object.__setattr__(self, name, _clean(getattr(self, name)))
        if not self.present():
            raise MissingIdentifierError()

    def present(self) -> list[ClaimIdentifier]:
        """Supplied identifiers in matching precedence order."""

        candidates = (
            (IdentifierKind.BOOKING_ID, self.booking_id),
            (IdentifierKind.ORDER_ID, self.order_id),
            (IdentifierKind.TICKET_NUMBER, self.ticket_number),
            (IdentifierKind.QR_PAYLOAD, self.qr_payload),
        )
        return [ClaimIdentifier(kind, value) for kind, value in candidates if value]

    @property
    def primary(self) -> ClaimIdentifier:
        return self.present()[0]


__all__ = ["ClaimIdentifier", "ClaimIdentifiers", "IdentifierKind"]
