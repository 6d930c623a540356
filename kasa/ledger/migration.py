"""Versioned data migrations for the ledger state.

Each step is gated by `LedgerState.data_version` and runs at most once:
  2  legacy floating-point major units -> int minor units
  3  name-matched card associations -> explicit card_id references

The legacy detection heuristic is lossy: a legacy value that is already a
whole number of at least 100000 major units is taken as minor units and left
unscaled.
"""

from __future__ import annotations

import logging

from kasa.ledger.models import (
    CASHBACK_FIXED,
    DATA_VERSION_CARD_LINKS,
    DATA_VERSION_MINOR_UNITS,
    LedgerState,
)
from kasa.money import round_half_up, to_minor_units

logger = logging.getLogger(__name__)

LEGACY_THRESHOLD = 100000


def needs_migration(value: object) -> bool:
    """True when a stored value looks like legacy major units."""
    if value is None or isinstance(value, bool):
        return False
    try:
        num = float(value)
    except (TypeError, ValueError):
        return False
    return not num.is_integer() or num < LEGACY_THRESHOLD


def _scaled(value: object) -> int:
    if needs_migration(value):
        return to_minor_units(value)
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def migrate_currency(state: LedgerState) -> bool:
    """Scale every monetary field to minor units. Returns False if already done."""
    if (state.data_version or 0) >= DATA_VERSION_MINOR_UNITS:
        return False

    for exp in state.expenses:
        exp.amount = _scaled(exp.amount)
    for card in state.cards:
        card.limit = _scaled(card.limit)
    for trade in state.assets:
        trade.price = _scaled(trade.price)
    for log in state.balance_logs:
        log.amount = _scaled(log.amount)
    for plan in state.recurring_plans:
        plan.amount = _scaled(plan.amount)
        if plan.cashback_type == CASHBACK_FIXED:
            plan.cashback_value = _scaled(plan.cashback_value)
    for income in state.recurring_income:
        income.amount = _scaled(income.amount)

    state.data_version = DATA_VERSION_MINOR_UNITS
    logger.info(
        "Migrated currency to minor units (%d expenses, %d wallet entries)",
        len(state.expenses), len(state.balance_logs),
    )
    return True


def _rounded(value: object) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    try:
        return round_half_up(float(value))
    except (TypeError, ValueError):
        return 0


def round_fractional_amounts(state: LedgerState) -> int:
    """Round money fields of a minor-unit state to whole minor units.

    Documents written by other clients may carry fractional minor units
    (percent cashback on an odd amount). Returns the number of values changed.
    """
    changed = 0

    def fix(obj, attr):
        nonlocal changed
        value = getattr(obj, attr)
        rounded = _rounded(value)
        if rounded != value or type(value) is not int:
            setattr(obj, attr, rounded)
            changed += 1

    for exp in state.expenses:
        fix(exp, "amount")
    for card in state.cards:
        fix(card, "limit")
    for trade in state.assets:
        fix(trade, "price")
    for log in state.balance_logs:
        fix(log, "amount")
    for plan in state.recurring_plans:
        fix(plan, "amount")
        if plan.cashback_type == CASHBACK_FIXED:
            fix(plan, "cashback_value")
    for income in state.recurring_income:
        fix(income, "amount")
    if changed:
        logger.warning("Rounded %d fractional money values to whole minor units", changed)
    return changed


def link_card_references(state: LedgerState) -> int:
    """Attach card_id to expenses and plans whose method names a card.

    Records that already carry a reference are left alone, so this can run
    after every document merge. Returns the number of records linked.
    """
    linked = 0
    for exp in state.expenses:
        if exp.card_id is not None:
            continue
        card = state.card_by_name(exp.method)
        if card is not None:
            exp.card_id = card.id
            exp.method = card.name
            linked += 1
    for plan in state.recurring_plans:
        if plan.card_id is not None:
            continue
        card = state.card_by_name(plan.method)
        if card is not None:
            plan.card_id = card.id
            plan.method = card.name
            linked += 1
    if linked:
        logger.info("Linked %d records to cards", linked)
    return linked


def run_migrations(state: LedgerState) -> list[int]:
    """Apply pending steps in order; returns the versions applied."""
    applied = []
    if migrate_currency(state):
        applied.append(DATA_VERSION_MINOR_UNITS)
    if state.data_version < DATA_VERSION_CARD_LINKS:
        link_card_references(state)
        state.data_version = DATA_VERSION_CARD_LINKS
        applied.append(DATA_VERSION_CARD_LINKS)
    return applied
