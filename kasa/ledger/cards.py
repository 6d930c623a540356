"""Credit-card billing windows, debt aggregation and limit admission.

Two debt figures exist and must not be merged:
  card_debt    all-time spends minus all-time payments; drives remaining limit
  period_debt  spends minus payments inside one billing window; display only

Expenses are associated with a card through Expense.card_id.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta

from kasa.dates import (
    HolidayCalendar,
    clamped_date,
    next_business_day,
    parse_any_date,
)
from kasa.ledger.errors import InsufficientLimitError, NotFoundError, ValidationError
from kasa.ledger.models import Card, Expense, LedgerState, names_match

logger = logging.getLogger(__name__)

# Slack for comparisons against values carried over from the float format
ADMISSION_EPSILON = 0.1
DUE_DATE_OFFSET_DAYS = 10


@dataclass(frozen=True)
class BillingWindow:
    """Statement period; both bounds inclusive (the end spans its whole day)."""
    start: date
    end: date

    def contains(self, value: date | str | None) -> bool:
        if isinstance(value, str) or value is None:
            value = parse_any_date(value)
            if value is None:
                return False
        return self.start <= value <= self.end


# ── Windows ──────────────────────────────────────────────


def billing_window(
    card: Card, reference_date: date, period_offset: int = 0,
) -> BillingWindow:
    """Statement window containing `reference_date` shifted by `period_offset` months."""
    ref = clamped_date(
        reference_date.year, reference_date.month + period_offset, reference_date.day,
    )
    cutoff = card.cutoff
    if ref.day < cutoff:
        start = clamped_date(ref.year, ref.month - 1, cutoff)
        end = clamped_date(ref.year, ref.month, cutoff)
    else:
        start = clamped_date(ref.year, ref.month, cutoff)
        end = clamped_date(ref.year, ref.month + 1, cutoff)
    return BillingWindow(start=start, end=end)


def due_date(window_end: date, holidays: HolidayCalendar | None = None) -> date:
    return next_business_day(window_end + timedelta(days=DUE_DATE_OFFSET_DAYS), holidays)


# ── Debt ─────────────────────────────────────────────────


def card_expenses(card: Card, expenses: list[Expense]) -> list[Expense]:
    return [e for e in expenses if e.card_id is not None and e.card_id == card.id]


def _spends_and_payments(items: list[Expense]) -> tuple[int, int]:
    spends = sum(e.amount for e in items if not e.is_payment)
    payments = sum(e.amount for e in items if e.is_payment)
    return spends, payments


def card_debt(card: Card, expenses: list[Expense]) -> int:
    """All-time outstanding debt, never negative."""
    spends, payments = _spends_and_payments(card_expenses(card, expenses))
    return max(0, spends - payments)


def remaining_limit(card: Card, expenses: list[Expense]) -> int:
    return card.limit - card_debt(card, expenses)


def period_debt(card: Card, window: BillingWindow, expenses: list[Expense]) -> int:
    """Spends minus payments dated inside `window`, never negative."""
    in_window = [e for e in card_expenses(card, expenses) if window.contains(e.iso_date)]
    spends, payments = _spends_and_payments(in_window)
    return max(0, spends - payments)


def statement_debt(card: Card, window: BillingWindow, expenses: list[Expense]) -> int:
    """Spends dated up to the window end minus every payment made so far."""
    items = card_expenses(card, expenses)
    spends = 0
    for e in items:
        if e.is_payment:
            continue
        d = parse_any_date(e.iso_date)
        if d is not None and d <= window.end:
            spends += e.amount
    payments = sum(e.amount for e in items if e.is_payment)
    return max(0, spends - payments)


def window_expenses(card: Card, window: BillingWindow, expenses: list[Expense]) -> list[Expense]:
    """Card records inside the window, newest first."""
    items = [e for e in card_expenses(card, expenses) if window.contains(e.iso_date)]
    return sorted(items, key=lambda e: e.iso_date, reverse=True)


# ── Admission control ────────────────────────────────────


def check_admission(
    state: LedgerState, card: Card, amount: int, credit_back: int = 0,
) -> int:
    """Reject a spend larger than the remaining limit.

    `credit_back` is added to the remaining limit for edits that replace an
    existing spend on the same card. Returns the remaining limit.
    """
    remaining = remaining_limit(card, state.expenses) + credit_back
    if amount > remaining + ADMISSION_EPSILON:
        raise InsufficientLimitError(card.name, remaining, amount)
    return remaining


def is_admissible(state: LedgerState, card: Card, amount: int) -> bool:
    try:
        check_admission(state, card, amount)
    except InsufficientLimitError:
        return False
    return True


# ── Card CRUD ────────────────────────────────────────────


def _validate_card_fields(name: str, cutoff: int, limit: int) -> None:
    if not name:
        raise ValidationError("Card name is required")
    if not isinstance(cutoff, int) or not 1 <= cutoff <= 31:
        raise ValidationError(f"Cutoff day must be between 1 and 31, got {cutoff!r}")
    if not isinstance(limit, int) or limit <= 0:
        raise ValidationError(f"Card limit must be a positive amount, got {limit!r}")


def get_card(state: LedgerState, card_id: int | str) -> Card:
    card = state.card_by_id(card_id)
    if card is None:
        raise NotFoundError("Card", card_id)
    return card


def add_card(
    state: LedgerState, name: str, cutoff: int, limit: int,
    brand: str = "visa", last4: str = "",
) -> Card:
    name = (name or "").strip()
    _validate_card_fields(name, cutoff, limit)
    if state.card_by_name(name) is not None:
        raise ValidationError(f"A card named '{name}' already exists")
    card = Card(name=name, cutoff=cutoff, limit=limit, brand=brand, last4=last4[:4])
    state.cards.append(card)
    if not any(names_match(m, name) for m in state.methods):
        state.methods.append(name)
    logger.info("Added card %s (cutoff=%d, limit=%d)", name, cutoff, limit)
    return card


def update_card(
    state: LedgerState, card_id: int | str, *,
    name: str | None = None, cutoff: int | None = None, limit: int | None = None,
    brand: str | None = None, last4: str | None = None,
) -> Card:
    """Edit a card. A rename re-points every linked record's method label."""
    card = get_card(state, card_id)
    new_name = card.name if name is None else name.strip()
    new_cutoff = card.cutoff if cutoff is None else cutoff
    new_limit = card.limit if limit is None else limit
    _validate_card_fields(new_name, new_cutoff, new_limit)
    clash = state.card_by_name(new_name)
    if clash is not None and clash.id != card.id:
        raise ValidationError(f"A card named '{new_name}' already exists")

    old_name = card.name
    card.name = new_name
    card.cutoff = new_cutoff
    card.limit = new_limit
    if brand is not None:
        card.brand = brand
    if last4 is not None:
        card.last4 = last4[:4]

    if new_name != old_name:
        for exp in card_expenses(card, state.expenses):
            exp.method = new_name
        for plan in state.recurring_plans:
            if plan.card_id == card.id:
                plan.method = new_name
        for i, method in enumerate(state.methods):
            if names_match(method, old_name):
                state.methods[i] = new_name
                break
        else:
            state.methods.append(new_name)
        logger.info("Renamed card %s -> %s", old_name, new_name)
    return card


def delete_card(state: LedgerState, card_id: int | str) -> tuple[int, int]:
    """Remove a card together with its expenses and recurring plans.

    Returns (expenses_removed, plans_removed). Wallet entries are untouched.
    """
    card = get_card(state, card_id)
    state.cards.remove(card)
    before_exp = len(state.expenses)
    state.expenses = [e for e in state.expenses if e.card_id != card.id]
    before_plans = len(state.recurring_plans)
    state.recurring_plans = [p for p in state.recurring_plans if p.card_id != card.id]
    state.methods = [m for m in state.methods if not names_match(m, card.name)]
    removed = (before_exp - len(state.expenses), before_plans - len(state.recurring_plans))
    logger.info(
        "Deleted card %s (%d expenses, %d plans removed)", card.name, *removed,
    )
    return removed
