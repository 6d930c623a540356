"""Tests for kasa.ledger.cards — billing windows, debt and limit admission."""

from datetime import date

import pytest

from kasa.dates import HolidayCalendar
from kasa.ledger import cards
from kasa.ledger.errors import InsufficientLimitError, NotFoundError, ValidationError
from kasa.ledger.models import BalanceLog, Card, Expense, LedgerState, RecurringPlan


def _spend(card, amount, iso_date="2024-01-05", **overrides):
    fields = dict(
        merchant="Shop", amount=amount, method=card.name, category="Market",
        iso_date=iso_date, is_credit=True, card_id=card.id,
    )
    fields.update(overrides)
    return Expense(**fields)


def _payment(card, amount, iso_date="2024-01-06"):
    return _spend(card, amount, iso_date, merchant="Payment", is_payment=True)


@pytest.fixture
def card():
    return Card(name="Bonus", cutoff=15, limit=50000)


@pytest.fixture
def state(card):
    return LedgerState(cards=[card], methods=["Nakit", "Bonus"])


class TestBillingWindow:
    def test_before_cutoff(self, card):
        window = cards.billing_window(card, date(2024, 1, 10))
        assert window.start == date(2023, 12, 15)
        assert window.end == date(2024, 1, 15)

    def test_on_or_after_cutoff(self, card):
        window = cards.billing_window(card, date(2024, 1, 20))
        assert window.start == date(2024, 1, 15)
        assert window.end == date(2024, 2, 15)

    def test_on_cutoff_day_starts_new_period(self, card):
        window = cards.billing_window(card, date(2024, 1, 15))
        assert window.start == date(2024, 1, 15)

    def test_previous_period(self, card):
        window = cards.billing_window(card, date(2024, 1, 10), period_offset=-1)
        assert window.start == date(2023, 11, 15)
        assert window.end == date(2023, 12, 15)

    def test_cutoff_clamped_to_month_length(self):
        card = Card(name="Late", cutoff=31, limit=1000)
        window = cards.billing_window(card, date(2024, 2, 10))
        assert window.start == date(2024, 1, 31)
        assert window.end == date(2024, 2, 29)

    def test_contains_is_inclusive(self, card):
        window = cards.billing_window(card, date(2024, 1, 10))
        assert window.contains("2023-12-15")
        assert window.contains("2024-01-15")
        assert not window.contains("2024-01-16")
        assert not window.contains("garbage")
        assert not window.contains(None)


class TestDueDate:
    def test_ten_days_after_cutoff(self):
        assert cards.due_date(date(2026, 10, 4), HolidayCalendar()) == date(2026, 10, 14)

    def test_rolls_past_holidays_and_weekend(self):
        assert cards.due_date(date(2026, 3, 10), HolidayCalendar()) == date(2026, 3, 23)


class TestDebt:
    def test_spends_minus_payments(self, state, card):
        state.expenses = [_spend(card, 30000), _payment(card, 10000)]
        assert cards.card_debt(card, state.expenses) == 20000
        assert cards.remaining_limit(card, state.expenses) == 30000

    def test_overpayment_never_negative(self, state, card):
        state.expenses = [_spend(card, 1000), _payment(card, 5000)]
        assert cards.card_debt(card, state.expenses) == 0
        assert cards.remaining_limit(card, state.expenses) == card.limit

    def test_other_cards_ignored(self, state, card):
        other = Card(name="Other", cutoff=1, limit=1000)
        state.expenses = [_spend(other, 700)]
        assert cards.card_debt(card, state.expenses) == 0

    def test_name_match_without_card_id_ignored(self, state, card):
        state.expenses = [_spend(card, 700, card_id=None)]
        assert cards.card_debt(card, state.expenses) == 0

    def test_period_debt_only_counts_window(self, state, card):
        state.expenses = [
            _spend(card, 1000, "2023-12-01"),
            _spend(card, 2000, "2023-12-20"),
            _payment(card, 500, "2024-01-02"),
        ]
        window = cards.billing_window(card, date(2024, 1, 10))
        assert cards.period_debt(card, window, state.expenses) == 1500
        assert cards.card_debt(card, state.expenses) == 2500

    def test_statement_debt_ignores_later_spends(self, state, card):
        state.expenses = [
            _spend(card, 1000, "2023-12-20"),
            _spend(card, 4000, "2024-01-20"),
            _payment(card, 300, "2024-01-25"),
        ]
        window = cards.billing_window(card, date(2024, 1, 10))
        assert cards.statement_debt(card, window, state.expenses) == 700

    def test_window_expenses_newest_first(self, state, card):
        state.expenses = [_spend(card, 1, "2023-12-20"), _spend(card, 2, "2024-01-05")]
        window = cards.billing_window(card, date(2024, 1, 10))
        items = cards.window_expenses(card, window, state.expenses)
        assert [e.amount for e in items] == [2, 1]


class TestAdmission:
    def test_spend_over_remaining_rejected(self, state, card):
        state.expenses = [_spend(card, 48000)]
        with pytest.raises(InsufficientLimitError) as exc:
            cards.check_admission(state, card, 5000)
        assert exc.value.remaining == 2000
        assert exc.value.requested == 5000

    def test_exact_remaining_admitted(self, state, card):
        state.expenses = [_spend(card, 48000)]
        assert cards.check_admission(state, card, 2000) == 2000

    def test_credit_back_for_edits(self, state, card):
        existing = _spend(card, 48000)
        state.expenses = [existing]
        cards.check_admission(state, card, 50000, credit_back=existing.amount)

    def test_is_admissible(self, state, card):
        state.expenses = [_spend(card, 48000)]
        assert cards.is_admissible(state, card, 2000)
        assert not cards.is_admissible(state, card, 2001)


class TestCardCrud:
    def test_add_card_registers_method(self):
        state = LedgerState(methods=["Nakit"])
        card = cards.add_card(state, "World", 5, 100000, brand="mastercard", last4="123456")
        assert card in state.cards
        assert "World" in state.methods
        assert card.last4 == "1234"

    def test_duplicate_name_rejected(self, state):
        with pytest.raises(ValidationError):
            cards.add_card(state, " bonus ", 5, 1000)

    @pytest.mark.parametrize("name,cutoff,limit", [
        ("", 5, 1000), ("X", 0, 1000), ("X", 32, 1000), ("X", 5, 0),
    ])
    def test_invalid_fields(self, name, cutoff, limit):
        with pytest.raises(ValidationError):
            cards.add_card(LedgerState(), name, cutoff, limit)

    def test_get_missing(self, state):
        with pytest.raises(NotFoundError):
            cards.get_card(state, 999)

    def test_rename_repoints_records(self, state, card):
        exp = _spend(card, 100)
        plan = RecurringPlan(name="Music", amount=100, day=1, method="Bonus", card_id=card.id)
        state.expenses = [exp]
        state.recurring_plans = [plan]
        cards.update_card(state, card.id, name="Bonus Plus", limit=60000)
        assert exp.method == "Bonus Plus"
        assert plan.method == "Bonus Plus"
        assert state.methods == ["Nakit", "Bonus Plus"]
        assert card.limit == 60000

    def test_rename_onto_other_card_rejected(self, state):
        other = cards.add_card(state, "Other", 1, 1000)
        with pytest.raises(ValidationError):
            cards.update_card(state, other.id, name="Bonus")

    def test_delete_cascades_but_keeps_wallet(self, state, card):
        state.expenses = [_spend(card, 100), _payment(card, 50), Expense(
            merchant="Cafe", amount=20, method="Nakit", category="Yemek", iso_date="2024-01-01",
        )]
        state.recurring_plans = [
            RecurringPlan(name="Music", amount=100, day=1, method="Bonus", card_id=card.id),
        ]
        state.balance_logs = [BalanceLog(title="Card payment: Bonus", amount=-50, date="2024-01-06")]
        removed = cards.delete_card(state, card.id)
        assert removed == (2, 1)
        assert state.cards == []
        assert len(state.expenses) == 1
        assert "Bonus" not in state.methods
        assert len(state.balance_logs) == 1
