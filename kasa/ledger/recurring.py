"""Recurring obligation engine.

Materializes monthly recurring plans (subscriptions, bills) into expenses,
backfilling every month elapsed since the last processed one, and credits
recurring income into the wallet. Each plan carries a `YYYY-MM` marker so a
month is visited at most once; running the pass twice in a row is a no-op.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from datetime import date

from kasa.dates import (
    clamped_date,
    is_valid_date,
    local_date_iso,
    month_key,
    parse_any_date,
    parse_month_key,
)
from kasa.ledger import wallet
from kasa.ledger.cards import check_admission
from kasa.ledger.errors import InsufficientLimitError, NotFoundError, ValidationError
from kasa.ledger.models import (
    CASHBACK_FIXED,
    CASHBACK_NONE,
    CASHBACK_PERCENT,
    CASHBACK_TYPES,
    BalanceLog,
    Card,
    Expense,
    LedgerState,
    RecurringIncome,
    RecurringPlan,
)

logger = logging.getLogger(__name__)

DEFAULT_RECURRING_CATEGORY = "Abonelik"


@dataclass
class SkippedOccurrence:
    plan_id: int | str
    month: str
    reason: str


@dataclass
class RecurringRunResult:
    """Outcome of one recurring pass."""
    materialized: list[Expense] = field(default_factory=list)
    skipped: list[SkippedOccurrence] = field(default_factory=list)
    income: list[BalanceLog] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.materialized or self.skipped or self.income)


# ── Cashback ─────────────────────────────────────────────


def campaign_active(plan: RecurringPlan, on_date: date) -> bool:
    """A campaign stays active through its end date; no end date means always."""
    if not plan.campaign_end_date:
        return True
    end = parse_any_date(plan.campaign_end_date)
    if end is None:
        return True
    return on_date <= end


def net_amount(plan: RecurringPlan, on_date: date) -> int:
    """Plan amount after the cashback rule, floored at zero."""
    amount = plan.amount
    if plan.cashback_type == CASHBACK_NONE or not campaign_active(plan, on_date):
        return amount
    if plan.cashback_type == CASHBACK_PERCENT:
        deduction = int(math.floor(amount * float(plan.cashback_value) / 100 + 0.5))
    elif plan.cashback_type == CASHBACK_FIXED:
        deduction = int(plan.cashback_value)
    else:
        deduction = 0
    return max(0, amount - deduction)


# ── Helpers ──────────────────────────────────────────────


def _plan_card(state: LedgerState, plan: RecurringPlan) -> Card | None:
    if plan.card_id is not None:
        return state.card_by_id(plan.card_id)
    return None


def _month_expense(state: LedgerState, plan_id: int | str, key: str) -> Expense | None:
    for exp in state.expenses:
        if exp.recurring_plan_id == plan_id and exp.iso_date.startswith(key):
            return exp
    return None


def _remove_month_expense(state: LedgerState, plan: RecurringPlan, key: str) -> Expense | None:
    """Drop a plan's materialized expense for `key` and reverse its wallet impact."""
    exp = _month_expense(state, plan.id, key)
    if exp is None:
        return None
    entry = wallet.prepare_movement(f"Refund: {plan.name}", -exp.wallet_impact)
    state.expenses.remove(exp)
    if entry is not None:
        wallet.append_entry(state, entry)
    return exp


def _first_month(plan: RecurringPlan, today: date) -> tuple[int, int]:
    if plan.last_processed_month:
        year, month = parse_month_key(plan.last_processed_month)
        month += 1
    else:
        created = parse_any_date(plan.created_at)
        start = created or today
        year, month = start.year, start.month
    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    return year, month


def _materialize(
    state: LedgerState, plan: RecurringPlan, card: Card | None,
    occurrence: date, category: str,
) -> Expense:
    amount = net_amount(plan, occurrence)
    iso = local_date_iso(occurrence)
    exp = Expense(
        merchant=plan.name,
        amount=amount,
        method=card.name if card else plan.method,
        category=category,
        iso_date=iso,
        is_credit=card is not None,
        is_recurring=True,
        recurring_plan_id=plan.id,
        card_id=card.id if card else None,
    )
    state.expenses.append(exp)
    wallet.record_movement(state, f"Automatic payment: {plan.name}", exp.wallet_impact, iso)
    return exp


# ── Plan processing ──────────────────────────────────────


def process_recurring_plans(
    state: LedgerState, today: date | None = None,
    category: str = DEFAULT_RECURRING_CATEGORY,
) -> RecurringRunResult:
    """Materialize every elapsed, unprocessed month of each active auto-pay plan."""
    today = today or date.today()
    result = RecurringRunResult()
    current = (today.year, today.month)

    for plan in state.recurring_plans:
        if not plan.active or not plan.auto_pay:
            continue
        try:
            year, month = _first_month(plan, today)
        except ValueError:
            logger.warning(
                "Plan %s has an invalid marker %r, starting from the current month",
                plan.name, plan.last_processed_month,
            )
            year, month = current
        created = parse_any_date(plan.created_at)
        card = _plan_card(state, plan)

        while (year, month) <= current:
            occurrence = clamped_date(year, month, plan.day)
            if (year, month) == current and today < occurrence:
                break
            key = month_key(occurrence)

            if created is not None and occurrence < created:
                logger.debug("Plan %s: %s precedes creation, not charged", plan.name, key)
            elif plan.card_id is not None and card is None:
                logger.warning("Plan %s references a missing card, skipping %s", plan.name, key)
                result.skipped.append(SkippedOccurrence(plan.id, key, "missing card"))
            elif _month_expense(state, plan.id, key) is not None:
                logger.debug("Plan %s already has an expense for %s", plan.name, key)
            else:
                admitted = True
                if card is not None:
                    try:
                        check_admission(state, card, net_amount(plan, occurrence))
                    except InsufficientLimitError as e:
                        logger.warning("Automatic payment skipped for %s (%s): %s", plan.name, key, e)
                        result.skipped.append(SkippedOccurrence(plan.id, key, "insufficient limit"))
                        admitted = False
                if admitted:
                    exp = _materialize(state, plan, card, occurrence, category)
                    result.materialized.append(exp)
                    logger.info("Materialized %s for %s: %d", plan.name, key, exp.amount)

            plan.last_processed_month = key
            month += 1
            if month > 12:
                year, month = year + 1, 1

    return result


# ── Plan CRUD ────────────────────────────────────────────


def _resolve_method(state: LedgerState, method: str) -> tuple[str, Card | None]:
    method = (method or "").strip()
    if not method:
        raise ValidationError("Payment method is required")
    card = state.card_by_name(method)
    return (card.name if card else method), card


def _validate_plan_fields(
    name: str, amount: int, day: int, cashback_type: str,
    cashback_value: float, campaign_end_date: str | None,
) -> None:
    if not name:
        raise ValidationError("Plan name is required")
    if not isinstance(amount, int) or amount <= 0:
        raise ValidationError(f"Plan amount must be positive, got {amount!r}")
    if not isinstance(day, int) or not 1 <= day <= 31:
        raise ValidationError(f"Plan day must be between 1 and 31, got {day!r}")
    if cashback_type not in CASHBACK_TYPES:
        raise ValidationError(f"Unknown cashback type: {cashback_type!r}")
    if cashback_value < 0:
        raise ValidationError("Cashback value cannot be negative")
    if campaign_end_date and not is_valid_date(campaign_end_date):
        raise ValidationError(f"Invalid campaign end date: {campaign_end_date!r}")


def get_plan(state: LedgerState, plan_id: int | str) -> RecurringPlan:
    plan = state.plan_by_id(plan_id)
    if plan is None:
        raise NotFoundError("Recurring plan", plan_id)
    return plan


def add_plan(
    state: LedgerState, name: str, amount: int, day: int, method: str, *,
    auto_pay: bool = True, icon: str = "default",
    cashback_type: str = CASHBACK_NONE, cashback_value: float = 0,
    campaign_end_date: str | None = None, today: date | None = None,
) -> RecurringPlan:
    """Create a plan. Card plans must fit the card's remaining limit."""
    today = today or date.today()
    name = (name or "").strip()
    _validate_plan_fields(name, amount, day, cashback_type, cashback_value, campaign_end_date)
    method, card = _resolve_method(state, method)
    if card is not None:
        check_admission(state, card, amount)
    plan = RecurringPlan(
        name=name, amount=amount, day=day, method=method,
        card_id=card.id if card else None,
        auto_pay=auto_pay, icon=icon,
        cashback_type=cashback_type, cashback_value=cashback_value,
        campaign_end_date=campaign_end_date or None,
        created_at=local_date_iso(today),
    )
    state.recurring_plans.append(plan)
    logger.info("Added recurring plan %s (%d on day %d via %s)", name, amount, day, method)
    return plan


def edit_plan(
    state: LedgerState, plan_id: int | str, *,
    name: str | None = None, amount: int | None = None, day: int | None = None,
    method: str | None = None, auto_pay: bool | None = None, icon: str | None = None,
    cashback_type: str | None = None, cashback_value: float | None = None,
    campaign_end_date: str | None = None, today: date | None = None,
) -> RecurringPlan:
    """Update a plan and, when this month was already charged, that month's expense.

    The current month's expense is overwritten in place; the wallet receives
    the delta of its impact.
    """
    today = today or date.today()
    plan = get_plan(state, plan_id)
    new_name = plan.name if name is None else name.strip()
    new_amount = plan.amount if amount is None else amount
    new_day = plan.day if day is None else day
    new_cb_type = plan.cashback_type if cashback_type is None else cashback_type
    new_cb_value = plan.cashback_value if cashback_value is None else cashback_value
    new_campaign = plan.campaign_end_date if campaign_end_date is None else (campaign_end_date or None)
    _validate_plan_fields(new_name, new_amount, new_day, new_cb_type, new_cb_value, new_campaign)
    new_method, card = _resolve_method(state, plan.method if method is None else method)

    key = month_key(today)
    current_exp = _month_expense(state, plan.id, key) if plan.last_processed_month == key else None
    if card is not None:
        credit_back = 0
        if current_exp is not None and current_exp.card_id == card.id and not current_exp.is_payment:
            credit_back = current_exp.amount
        check_admission(state, card, new_amount, credit_back=credit_back)

    updated = replace(
        plan, name=new_name, amount=new_amount, day=new_day, method=new_method,
        card_id=card.id if card else None, cashback_type=new_cb_type,
        cashback_value=new_cb_value, campaign_end_date=new_campaign,
    )
    entry = None
    if current_exp is not None:
        occurrence = clamped_date(today.year, today.month, new_day)
        revised = replace(
            current_exp, amount=net_amount(updated, occurrence), is_credit=card is not None,
        )
        entry = wallet.prepare_movement(
            f"Adjustment: {new_name}", revised.wallet_impact - current_exp.wallet_impact,
        )

    plan.name = new_name
    plan.amount = new_amount
    plan.day = new_day
    plan.method = new_method
    plan.card_id = updated.card_id
    plan.cashback_type = new_cb_type
    plan.cashback_value = new_cb_value
    plan.campaign_end_date = new_campaign
    if auto_pay is not None:
        plan.auto_pay = auto_pay
    if icon is not None:
        plan.icon = icon

    if current_exp is not None:
        current_exp.merchant = plan.name
        current_exp.amount = revised.amount
        current_exp.iso_date = local_date_iso(occurrence)
        current_exp.method = plan.method
        current_exp.is_credit = revised.is_credit
        current_exp.card_id = plan.card_id
        if entry is not None:
            wallet.append_entry(state, entry)
        logger.info("Updated %s expense for %s", plan.name, key)
    return plan


def set_plan_active(
    state: LedgerState, plan_id: int | str, active: bool, today: date | None = None,
) -> RecurringPlan:
    """Pause or resume a plan.

    Pausing removes the current month's materialized expense. Resuming moves
    the marker to the previous month, so months spent paused are never
    backfilled while the current month is charged once it is due.
    """
    today = today or date.today()
    plan = get_plan(state, plan_id)
    if plan.active == active:
        return plan
    key = month_key(today)
    previous = month_key(clamped_date(today.year, today.month - 1, 1))
    if not active:
        _remove_month_expense(state, plan, key)
        if plan.last_processed_month == key:
            plan.last_processed_month = previous
    elif plan.last_processed_month is None or plan.last_processed_month < previous:
        plan.last_processed_month = previous
    plan.active = active
    logger.info("Plan %s %s", plan.name, "resumed" if active else "paused")
    return plan


def delete_plan(state: LedgerState, plan_id: int | str, today: date | None = None) -> RecurringPlan:
    """Remove a plan and its current-month expense; older months stay as history."""
    today = today or date.today()
    plan = get_plan(state, plan_id)
    _remove_month_expense(state, plan, month_key(today))
    state.recurring_plans.remove(plan)
    logger.info("Deleted recurring plan %s", plan.name)
    return plan


# ── Recurring income ─────────────────────────────────────


def add_income(state: LedgerState, name: str, amount: int, day: int) -> RecurringIncome:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Income name is required")
    if not isinstance(amount, int) or amount <= 0:
        raise ValidationError(f"Income amount must be positive, got {amount!r}")
    if not isinstance(day, int) or not 1 <= day <= 31:
        raise ValidationError(f"Income day must be between 1 and 31, got {day!r}")
    income = RecurringIncome(name=name, amount=amount, day=day)
    state.recurring_income.append(income)
    logger.info("Added recurring income %s (%d on day %d)", name, amount, day)
    return income


def delete_income(state: LedgerState, income_id: int | str) -> RecurringIncome:
    """Remove an income plan; entries it already produced stay in the wallet."""
    for income in state.recurring_income:
        if income.id == income_id:
            state.recurring_income.remove(income)
            return income
    raise NotFoundError("Recurring income", income_id)


def process_recurring_income(state: LedgerState, today: date | None = None) -> list[BalanceLog]:
    """Credit each active income once per month, from its (clamped) day onwards.

    No backfill: a month missed entirely is not credited later.
    """
    today = today or date.today()
    key = month_key(today)
    entries = []
    for income in state.recurring_income:
        if not income.active or income.last_processed_month == key:
            continue
        # day 31 falls on the last day of shorter months
        occurrence = clamped_date(today.year, today.month, income.day)
        if today < occurrence:
            continue
        entry = wallet.append_entry(
            state,
            BalanceLog(
                title=f"Recurring income: {income.name}",
                amount=income.amount,
                date=local_date_iso(occurrence),
                recurring_income_id=income.id,
            ),
        )
        income.last_processed_month = key
        entries.append(entry)
        logger.info("Credited recurring income %s: %d", income.name, income.amount)
    return entries
