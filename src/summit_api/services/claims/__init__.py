"""Pending pass claim reconciliation."""

from .identifiers import ClaimIdentifier, ClaimIdentifiers, IdentifierKind
from .lifecycle import ClaimLifecycleManager, ClaimResolution
from .matcher import ClaimMatcher, MatchResult

__all__ = [
    "ClaimIdentifier",
    "ClaimIdentifiers",
    "ClaimLifecycleManager",
    "ClaimMatcher",
    "ClaimResolution",
    "IdentifierKind",
    "MatchResult",
]
