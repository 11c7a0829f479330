"""Typed failures raised by the pass reconciliation and upgrade services."""

from __future__ import annotations


class PassEngineError(RuntimeError):
    """Base exception for pass, claim and upgrade failures."""


class ValidationError(PassEngineError):
    """Raised when caller input is missing or malformed."""


class MissingIdentifierError(ValidationError):
    """Raised when a claim carries none of the supported identifiers."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message
            or "Provide at least one of booking id, order id, ticket number or QR payload"
        )


class UnknownTierError(ValidationError):
    """Raised when a raw tier string does not resolve to a known tier."""

    def __init__(self, raw_tier: str | None) -> None:
        super().__init__(f"Unknown pass tier: {raw_tier!r}")
        self.raw_tier = raw_tier


class PaymentVerificationError(ValidationError):
    """Raised when a provider payment signature cannot be verified."""


class ConflictError(PassEngineError):
    """Raised when a request conflicts with current pass state."""


class AlreadyHasPassError(ConflictError):
    """Raised when a user already holds an active pass."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or "You already have a pass. Only one pass per user is allowed.")


class NotFoundError(PassEngineError):
    """Raised when a referenced record does not exist."""


class ForbiddenError(PassEngineError):
    """Raised when the caller does not own the referenced record."""


class InvalidStateError(PassEngineError):
    """Raised when a record is not in a state that allows the operation."""


class InvalidUpgradeError(PassEngineError):
    """Raised when a tier change does not move strictly up the hierarchy."""


class TransientStoreError(PassEngineError):
    """Raised when the backing store fails in a way worth retrying later."""


__all__ = [
    "AlreadyHasPassError",
    "ConflictError",
    "ForbiddenError",
    "InvalidStateError",
    "InvalidUpgradeError",
    "MissingIdentifierError",
    "NotFoundError",
    "PassEngineError",
    "PaymentVerificationError",
    "TransientStoreError",
    "UnknownTierError",
    "ValidationError",
]
