"""Dataclass models for the ledger state.

Each dataclass corresponds to one collection of the persisted state.
Money fields are int minor units; dates are local ISO strings (YYYY-MM-DD);
timestamps are ISO-8601 strings. Identifiers are millisecond-timestamp based
ints, so newer records sort after older ones.
"""

from __future__ import annotations

import random
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone

from kasa.dates import format_display_date

DATA_VERSION_LEGACY = 1
DATA_VERSION_MINOR_UNITS = 2
DATA_VERSION_CARD_LINKS = 3
CURRENT_DATA_VERSION = DATA_VERSION_CARD_LINKS

CASHBACK_NONE = "none"
CASHBACK_PERCENT = "percent"
CASHBACK_FIXED = "fixed"
CASHBACK_TYPES = (CASHBACK_NONE, CASHBACK_PERCENT, CASHBACK_FIXED)

TRADE_BUY = "buy"
TRADE_SELL = "sell"

_last_id = 0


def _new_id() -> int:
    global _last_id
    candidate = int(time.time() * 1000) * 1000 + random.randrange(1000)
    _last_id = max(candidate, _last_id + 1)
    return _last_id


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def names_match(a: str | None, b: str | None) -> bool:
    """Case- and surrounding-whitespace-insensitive name comparison."""
    if not a or not b:
        return False
    return str(a).strip().lower() == str(b).strip().lower()


@dataclass
class Expense:
    merchant: str
    amount: int
    method: str
    category: str
    iso_date: str
    id: int | str = field(default_factory=_new_id)
    description: str = ""
    is_credit: bool = False
    is_payment: bool = False
    is_recurring: bool = False
    recurring_plan_id: int | str | None = None
    card_id: int | str | None = None

    @property
    def display_date(self) -> str:
        return format_display_date(self.iso_date)

    @property
    def wallet_impact(self) -> int:
        """Signed effect of this record on the wallet balance.

        Cash/bank spends and card debt payments leave the wallet; card
        spends do not until they are paid.
        """
        if self.is_payment or not self.is_credit:
            return -self.amount
        return 0


@dataclass
class Card:
    name: str
    cutoff: int
    limit: int
    id: int | str = field(default_factory=_new_id)
    brand: str = "visa"
    last4: str = ""


@dataclass
class RecurringPlan:
    name: str
    amount: int
    day: int
    method: str
    id: int | str = field(default_factory=_new_id)
    card_id: int | str | None = None
    active: bool = True
    auto_pay: bool = True
    icon: str = "default"
    cashback_type: str = CASHBACK_NONE
    cashback_value: float = 0
    campaign_end_date: str | None = None
    last_processed_month: str | None = None
    created_at: str | None = None


@dataclass
class RecurringIncome:
    name: str
    amount: int
    day: int
    id: int | str = field(default_factory=_new_id)
    active: bool = True
    last_processed_month: str | None = None


@dataclass
class BalanceLog:
    title: str
    amount: int
    date: str
    id: int | str = field(default_factory=_new_id)
    created_at: str = field(default_factory=_now)
    recurring_income_id: int | str | None = None


@dataclass
class AssetTrade:
    asset_type: str
    quantity: float
    price: int
    trade_type: str
    iso_date: str
    id: int | str = field(default_factory=_new_id)

    @property
    def total(self) -> int:
        return int(round(self.quantity * self.price))

    @property
    def wallet_impact(self) -> int:
        return -self.total if self.trade_type == TRADE_BUY else self.total


@dataclass
class LedgerState:
    """The single aggregate owned by the running process.

    Every engine function receives it explicitly; nothing reads it ambiently.
    """
    expenses: list[Expense] = field(default_factory=list)
    cards: list[Card] = field(default_factory=list)
    assets: list[AssetTrade] = field(default_factory=list)
    recurring_plans: list[RecurringPlan] = field(default_factory=list)
    recurring_income: list[RecurringIncome] = field(default_factory=list)
    balance_logs: list[BalanceLog] = field(default_factory=list)
    methods: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    merchants: list[str] = field(default_factory=list)
    is_dark: bool = False
    is_privacy_mode: bool = False
    data_version: int = DATA_VERSION_LEGACY
    last_sync: str | None = None

    def card_by_id(self, card_id: int | str | None) -> Card | None:
        if card_id is None:
            return None
        for card in self.cards:
            if card.id == card_id:
                return card
        return None

    def card_by_name(self, name: str | None) -> Card | None:
        for card in self.cards:
            if names_match(card.name, name):
                return card
        return None

    def expense_by_id(self, expense_id: int | str) -> Expense | None:
        for exp in self.expenses:
            if exp.id == expense_id:
                return exp
        return None

    def plan_by_id(self, plan_id: int | str) -> RecurringPlan | None:
        for plan in self.recurring_plans:
            if plan.id == plan_id:
                return plan
        return None
