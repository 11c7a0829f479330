"""Ticketing provider integration."""

from .client import PaymentOrder, TicketingClient, TicketingProviderError

__all__ = ["PaymentOrder", "TicketingClient", "TicketingProviderError"]
