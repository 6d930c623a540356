"""User-initiated expense actions.

Every mutation keeps the wallet consistent: creating a record appends its
wallet impact, editing appends the delta, deleting appends the reversal.
Validation happens before any write, so a rejected call leaves the state as
it was.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date

from kasa.dates import add_months, is_valid_date, local_date_iso, parse_any_date
from kasa.ledger import wallet
from kasa.ledger.cards import ADMISSION_EPSILON, card_debt, check_admission, get_card
from kasa.ledger.errors import NotFoundError, ValidationError
from kasa.ledger.models import Expense, LedgerState, names_match
from kasa.money import split_installments

logger = logging.getLogger(__name__)

DEFAULT_PAYMENT_CATEGORY = "Kart Ödemesi"
PAYMENT_MERCHANT = "Credit card debt payment"
MAX_INSTALLMENTS = 36


def _require_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError(f"Amount must be a positive number of minor units, got {amount!r}")


def _require_date(iso_date: str) -> str:
    if not is_valid_date(iso_date):
        raise ValidationError(f"Invalid date: {iso_date!r}")
    return local_date_iso(parse_any_date(iso_date))


# ── Merchants ────────────────────────────────────────────


def remember_merchant(state: LedgerState, name: str) -> bool:
    """Add a merchant suggestion unless one with the same name exists."""
    name = (name or "").strip()
    if not name or any(names_match(m, name) for m in state.merchants):
        return False
    state.merchants.append(name)
    return True


def forget_merchant(state: LedgerState, name: str) -> bool:
    kept = [m for m in state.merchants if not names_match(m, name)]
    if len(kept) == len(state.merchants):
        return False
    state.merchants = kept
    return True


# ── Create ───────────────────────────────────────────────


def add_expense(
    state: LedgerState, merchant: str, amount: int, method: str, category: str,
    iso_date: str, description: str = "",
) -> Expense:
    """Record a cash/bank spend and take it out of the wallet.

    Card methods are rejected; card spends go through add_credit_expense.
    """
    merchant = (merchant or "").strip()
    if not merchant:
        raise ValidationError("Merchant is required")
    _require_amount(amount)
    iso_date = _require_date(iso_date)
    if state.card_by_name(method) is not None:
        raise ValidationError(
            f"'{method}' is a credit card; record card spends with the card command"
        )
    exp = Expense(
        merchant=merchant, amount=amount, method=method, category=category,
        iso_date=iso_date, description=(description or "").strip(),
    )
    state.expenses.append(exp)
    wallet.record_movement(state, merchant, exp.wallet_impact, iso_date)
    remember_merchant(state, merchant)
    logger.info("Added expense %s: %d via %s", merchant, amount, method)
    return exp


def add_credit_expense(
    state: LedgerState, card_id: int | str, merchant: str, amount: int,
    iso_date: str, category: str, installments: int = 1, description: str = "",
) -> list[Expense]:
    """Record a card spend, optionally split into monthly installments.

    The whole amount must fit the remaining limit. Installment dates advance
    one month at a time with the day clamped; the remainder of the split goes
    to the first installment.
    """
    card = get_card(state, card_id)
    merchant = (merchant or "").strip()
    if not merchant:
        raise ValidationError("Merchant is required")
    _require_amount(amount)
    iso_date = _require_date(iso_date)
    if not isinstance(installments, int) or not 1 <= installments <= MAX_INSTALLMENTS:
        raise ValidationError(
            f"Installments must be between 1 and {MAX_INSTALLMENTS}, got {installments!r}"
        )
    check_admission(state, card, amount)

    base = parse_any_date(iso_date)
    created = []
    for i, part in enumerate(split_installments(amount, installments)):
        label = f"{merchant} ({i + 1}/{installments})" if installments > 1 else merchant
        exp = Expense(
            merchant=label, amount=part, method=card.name, category=category,
            iso_date=local_date_iso(add_months(base, i)),
            description=(description or "").strip(),
            is_credit=True, card_id=card.id,
        )
        state.expenses.append(exp)
        created.append(exp)
    remember_merchant(state, merchant)
    logger.info(
        "Added card spend %s on %s: %d in %d installment(s)",
        merchant, card.name, amount, installments,
    )
    return created


def pay_card_debt(
    state: LedgerState, card_id: int | str, amount: int, iso_date: str,
    category: str = DEFAULT_PAYMENT_CATEGORY,
) -> Expense:
    """Pay down a card from the wallet. Paying more than the debt is rejected."""
    card = get_card(state, card_id)
    _require_amount(amount)
    iso_date = _require_date(iso_date)
    debt = card_debt(card, state.expenses)
    if amount > debt + ADMISSION_EPSILON:
        raise ValidationError(f"Payment {amount} exceeds the outstanding debt {debt}")
    exp = Expense(
        merchant=PAYMENT_MERCHANT, amount=amount, method=card.name, category=category,
        iso_date=iso_date, is_credit=True, is_payment=True, card_id=card.id,
    )
    state.expenses.append(exp)
    wallet.record_movement(state, f"Card payment: {card.name}", exp.wallet_impact, iso_date)
    logger.info("Paid %d towards %s", amount, card.name)
    return exp


# ── Edit / delete ────────────────────────────────────────


def get_expense(state: LedgerState, expense_id: int | str) -> Expense:
    exp = state.expense_by_id(expense_id)
    if exp is None:
        raise NotFoundError("Expense", expense_id)
    return exp


def edit_expense(
    state: LedgerState, expense_id: int | str, *,
    merchant: str | None = None, amount: int | None = None,
    iso_date: str | None = None, category: str | None = None,
    description: str | None = None, today: date | None = None,
) -> Expense:
    """Edit an expense and append the change in its wallet impact.

    Card spends that grow are re-checked against the limit; a payment may not
    grow past what is owed.
    """
    exp = get_expense(state, expense_id)
    new_merchant = exp.merchant if merchant is None else merchant.strip()
    if not new_merchant:
        raise ValidationError("Merchant is required")
    new_amount = exp.amount if amount is None else amount
    _require_amount(new_amount)
    new_date = exp.iso_date if iso_date is None else _require_date(iso_date)

    card = state.card_by_id(exp.card_id)
    if card is not None and new_amount > exp.amount:
        if exp.is_payment:
            owed = card_debt(card, state.expenses) + exp.amount
            if new_amount > owed + ADMISSION_EPSILON:
                raise ValidationError(f"Payment {new_amount} exceeds the outstanding debt {owed}")
        else:
            check_admission(state, card, new_amount, credit_back=exp.amount)

    delta = replace(exp, amount=new_amount).wallet_impact - exp.wallet_impact
    entry = wallet.prepare_movement(f"Adjustment: {new_merchant}", delta, local_date_iso(today))

    exp.merchant = new_merchant
    exp.amount = new_amount
    exp.iso_date = new_date
    if category is not None:
        exp.category = category
    if description is not None:
        exp.description = description.strip()
    if entry is not None:
        wallet.append_entry(state, entry)
    logger.info("Edited expense %s", exp.id)
    return exp


def delete_expense(
    state: LedgerState, expense_id: int | str, today: date | None = None,
) -> Expense:
    """Remove an expense and put its wallet impact back."""
    exp = get_expense(state, expense_id)
    entry = wallet.prepare_movement(
        f"Refund: {exp.merchant}", -exp.wallet_impact, local_date_iso(today),
    )
    state.expenses.remove(exp)
    if entry is not None:
        wallet.append_entry(state, entry)
    logger.info("Deleted expense %s (%s, %d)", exp.id, exp.merchant, exp.amount)
    return exp
