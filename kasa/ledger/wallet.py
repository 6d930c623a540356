"""Wallet ledger: append-only signed entries; balance is their sum.

There is no stored balance field. Components that move cash append an
entry here and own the sign of what they append.
"""

from __future__ import annotations

import logging

from kasa.dates import is_valid_date, local_date_iso, parse_any_date
from kasa.ledger.errors import NotFoundError, ValidationError
from kasa.ledger.models import BalanceLog, LedgerState

logger = logging.getLogger(__name__)

ENTRY_INCOME = "income"
ENTRY_EXPENSE = "expense"


def _validate_entry(entry: BalanceLog) -> None:
    if isinstance(entry.amount, bool) or not isinstance(entry.amount, int):
        raise ValidationError(f"Wallet amount must be an integer, got {entry.amount!r}")
    if entry.amount == 0:
        raise ValidationError("Wallet amount must be non-zero")


def append_entry(state: LedgerState, entry: BalanceLog) -> BalanceLog:
    """Append one entry. The amount must be a non-zero int."""
    _validate_entry(entry)
    state.balance_logs.append(entry)
    logger.debug("Wallet %+d: %s", entry.amount, entry.title)
    return entry


def prepare_movement(title: str, amount: int, date: str | None = None) -> BalanceLog | None:
    """Build and validate the entry for `amount` without appending it.

    Returns None for a zero amount. Callers that also change records build
    the entry first so a rejected amount leaves the state untouched.
    """
    if amount == 0:
        return None
    entry = BalanceLog(title=title, amount=amount, date=date or local_date_iso())
    _validate_entry(entry)
    return entry


def record_movement(
    state: LedgerState, title: str, amount: int, date: str | None = None,
) -> BalanceLog | None:
    """Append an entry for `amount` unless it is zero (nothing moved)."""
    entry = prepare_movement(title, amount, date)
    if entry is None:
        return None
    return append_entry(state, entry)


def balance(state: LedgerState) -> int:
    return sum(log.amount for log in state.balance_logs)


def add_manual_entry(
    state: LedgerState, title: str, amount: int, date: str, kind: str = ENTRY_INCOME,
) -> BalanceLog:
    """Record a user-entered wallet movement; the sign comes from `kind`."""
    title = (title or "").strip()
    if not title:
        raise ValidationError("Title is required")
    if not is_valid_date(date):
        raise ValidationError(f"Invalid date: {date!r}")
    if kind not in (ENTRY_INCOME, ENTRY_EXPENSE):
        raise ValidationError(f"Unknown entry kind: {kind!r}")
    magnitude = abs(amount)
    if magnitude == 0:
        raise ValidationError("Amount must be positive")
    signed = magnitude if kind == ENTRY_INCOME else -magnitude
    return append_entry(
        state,
        BalanceLog(title=title, amount=signed, date=local_date_iso(parse_any_date(date))),
    )


def delete_entry(state: LedgerState, entry_id: int | str) -> BalanceLog:
    for log in state.balance_logs:
        if log.id == entry_id:
            state.balance_logs.remove(log)
            return log
    raise NotFoundError("Wallet entry", entry_id)


def recent_entries(state: LedgerState, limit: int = 8) -> list[BalanceLog]:
    """Newest entries first, by creation timestamp."""
    ordered = sorted(state.balance_logs, key=lambda log: log.created_at or "", reverse=True)
    return ordered[:limit]
