"""Identity reconciliation between the auth provider and local users."""

from .resolver import IdentityResolver

__all__ = ["IdentityResolver"]
