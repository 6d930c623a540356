"""Exceptions raised by ledger operations.

Every failure here is recoverable: the operation that raised it has not
mutated the state.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for ledger operation failures."""


class ValidationError(LedgerError):
    """Raised when input fields are missing or invalid."""


class NotFoundError(LedgerError):
    """Raised when an identifier does not resolve to a record."""

    def __init__(self, kind: str, record_id: object):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} '{record_id}' not found")


class InsufficientLimitError(ValidationError):
    """Raised when a card spend would exceed the card's remaining limit."""

    def __init__(self, card_name: str, remaining: int, requested: int):
        self.card_name = card_name
        self.remaining = remaining
        self.requested = requested
        super().__init__(
            f"Insufficient limit on '{card_name}': remaining {remaining},"
            f" requested {requested}"
        )
