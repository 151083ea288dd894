"""Clients for the hosted ledger backend."""

from billdesk.clients.ledger import (
    AuthenticationError,
    Ledger,
    LedgerAPIClient,
    LedgerAPIError,
    NotFoundError,
    RateLimitError,
)

__all__ = [
    "AuthenticationError",
    "Ledger",
    "LedgerAPIClient",
    "LedgerAPIError",
    "NotFoundError",
    "RateLimitError",
]
