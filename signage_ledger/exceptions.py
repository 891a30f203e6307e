"""
Ledger error taxonomy.

Services raise these; the API layer maps them to HTTP responses and the
payment trigger logs them instead of propagating into the payment flow.
"""
from typing import Any, Optional


class LedgerError(Exception):
    """Base class for all engine errors."""

    status_code = 400

    def __init__(self, reason: str, **context: Any):
        super().__init__(reason)
        self.reason = reason
        self.context = context


class ValidationError(LedgerError):
    """Bad percentage, amount or identifier."""

    status_code = 400


class NotFoundError(LedgerError):
    """Missing ledger entry, settlement or target."""

    status_code = 404


class InvalidStateError(LedgerError):
    """Illegal transition (e.g. from a terminal status)."""

    status_code = 409


class ConfigurationError(LedgerError):
    """Affiliate program disabled or misconfigured."""

    status_code = 422


class DuplicateSuppressed(LedgerError):
    """
    Not a failure: an idempotent create found an existing record.

    Carries the existing record so callers can return it unchanged.
    """

    status_code = 200

    def __init__(self, reason: str, existing: Optional[Any] = None, **context: Any):
        super().__init__(reason, **context)
        self.existing = existing
