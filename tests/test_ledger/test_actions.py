"""Tests for kasa.ledger.actions — expense recording and card payments."""

from datetime import date

import pytest

from kasa.ledger import actions, wallet
from kasa.ledger.cards import card_debt
from kasa.ledger.errors import InsufficientLimitError, NotFoundError, ValidationError
from kasa.ledger.models import Card, Expense, LedgerState
from kasa.storage.document import import_backup


@pytest.fixture
def card():
    return Card(name="Bonus", cutoff=15, limit=50000)


@pytest.fixture
def state(card):
    return LedgerState(cards=[card], methods=["Nakit", "Bonus"], categories=["Market"])


class TestAddExpense:
    def test_cash_expense_leaves_wallet(self, state):
        exp = actions.add_expense(state, "Cafe", 2000, "Nakit", "Yemek", "2024-01-05")
        assert exp in state.expenses
        assert wallet.balance(state) == -2000
        assert state.balance_logs[0].date == "2024-01-05"

    def test_merchant_remembered(self, state):
        actions.add_expense(state, "  Cafe ", 2000, "Nakit", "Yemek", "2024-01-05")
        actions.add_expense(state, "cafe", 1000, "Nakit", "Yemek", "2024-01-06")
        assert state.merchants == ["Cafe"]

    def test_card_method_rejected(self, state):
        with pytest.raises(ValidationError, match="credit card"):
            actions.add_expense(state, "Shop", 2000, "bonus", "Market", "2024-01-05")

    @pytest.mark.parametrize("merchant,amount,iso_date", [
        ("", 100, "2024-01-05"), ("Cafe", 0, "2024-01-05"), ("Cafe", 100, "nope"),
    ])
    def test_invalid(self, state, merchant, amount, iso_date):
        with pytest.raises(ValidationError):
            actions.add_expense(state, merchant, amount, "Nakit", "Yemek", iso_date)
        assert state.expenses == []


class TestAddCreditExpense:
    def test_single_spend_raises_debt_not_wallet(self, state, card):
        created = actions.add_credit_expense(state, card.id, "Shop", 5000, "2024-01-05", "Market")
        assert len(created) == 1
        assert created[0].is_credit
        assert created[0].method == "Bonus"
        assert card_debt(card, state.expenses) == 5000
        assert state.balance_logs == []

    def test_installments(self, state, card):
        created = actions.add_credit_expense(
            state, card.id, "Laptop", 10000, "2024-01-31", "Market", installments=3,
        )
        assert [e.amount for e in created] == [3334, 3333, 3333]
        assert [e.iso_date for e in created] == ["2024-01-31", "2024-02-29", "2024-03-31"]
        assert created[1].merchant == "Laptop (2/3)"

    def test_over_limit_rejected(self, state, card):
        actions.add_credit_expense(state, card.id, "Shop", 48000, "2024-01-05", "Market")
        with pytest.raises(InsufficientLimitError):
            actions.add_credit_expense(state, card.id, "Shop", 5000, "2024-01-06", "Market")
        assert card_debt(card, state.expenses) == 48000

    @pytest.mark.parametrize("installments", [0, 37])
    def test_installment_bounds(self, state, card, installments):
        with pytest.raises(ValidationError):
            actions.add_credit_expense(
                state, card.id, "Shop", 100, "2024-01-05", "Market", installments=installments,
            )

    def test_unknown_card(self, state):
        with pytest.raises(NotFoundError):
            actions.add_credit_expense(state, 1, "Shop", 100, "2024-01-05", "Market")


class TestPayCardDebt:
    def test_payment_reduces_debt_and_wallet(self, state, card):
        actions.add_credit_expense(state, card.id, "Shop", 5000, "2024-01-05", "Market")
        payment = actions.pay_card_debt(state, card.id, 3000, "2024-01-10")
        assert payment.is_payment
        assert payment.category == actions.DEFAULT_PAYMENT_CATEGORY
        assert card_debt(card, state.expenses) == 2000
        assert wallet.balance(state) == -3000
        assert state.balance_logs[0].title == "Card payment: Bonus"

    def test_overpayment_rejected(self, state, card):
        actions.add_credit_expense(state, card.id, "Shop", 5000, "2024-01-05", "Market")
        with pytest.raises(ValidationError, match="exceeds"):
            actions.pay_card_debt(state, card.id, 6000, "2024-01-10")


class TestEditExpense:
    def test_cash_amount_change_records_delta(self, state):
        exp = actions.add_expense(state, "Cafe", 2000, "Nakit", "Yemek", "2024-01-05")
        actions.edit_expense(state, exp.id, amount=2500, today=date(2024, 1, 6))
        assert exp.amount == 2500
        assert wallet.balance(state) == -2500
        assert state.balance_logs[-1].title == "Adjustment: Cafe"
        assert state.balance_logs[-1].date == "2024-01-06"

    def test_text_only_edit_leaves_wallet(self, state):
        exp = actions.add_expense(state, "Cafe", 2000, "Nakit", "Yemek", "2024-01-05")
        actions.edit_expense(state, exp.id, category="Market", description="beans")
        assert exp.category == "Market"
        assert len(state.balance_logs) == 1

    def test_card_growth_rechecked(self, state, card):
        (exp,) = actions.add_credit_expense(state, card.id, "Shop", 45000, "2024-01-05", "Market")
        actions.edit_expense(state, exp.id, amount=50000)
        with pytest.raises(InsufficientLimitError):
            actions.edit_expense(state, exp.id, amount=50001)
        assert exp.amount == 50000

    def test_payment_cannot_exceed_debt(self, state, card):
        actions.add_credit_expense(state, card.id, "Shop", 5000, "2024-01-05", "Market")
        payment = actions.pay_card_debt(state, card.id, 3000, "2024-01-10")
        actions.edit_expense(state, payment.id, amount=5000)
        with pytest.raises(ValidationError):
            actions.edit_expense(state, payment.id, amount=5001)

    def test_missing(self, state):
        with pytest.raises(NotFoundError):
            actions.edit_expense(state, 42, amount=1)

    def test_fractional_delta_leaves_record_unchanged(self, state):
        exp = Expense(id=7, merchant="Cafe", amount=10.5, method="Nakit",
                      category="Yemek", iso_date="2024-01-05")
        state.expenses.append(exp)
        with pytest.raises(ValidationError, match="integer"):
            actions.edit_expense(state, 7, merchant="Bakery", amount=20)
        assert exp.merchant == "Cafe"
        assert exp.amount == 10.5
        assert state.balance_logs == []


class TestDeleteExpense:
    def test_cash_delete_refunds(self, state):
        exp = actions.add_expense(state, "Cafe", 2000, "Nakit", "Yemek", "2024-01-05")
        actions.delete_expense(state, exp.id, today=date(2024, 1, 6))
        assert state.expenses == []
        assert state.balance_logs[-1].amount == 2000
        assert state.balance_logs[-1].title == "Refund: Cafe"
        assert wallet.balance(state) == 0

    def test_card_spend_delete_leaves_wallet(self, state, card):
        (exp,) = actions.add_credit_expense(state, card.id, "Shop", 5000, "2024-01-05", "Market")
        actions.delete_expense(state, exp.id)
        assert state.balance_logs == []
        assert card_debt(card, state.expenses) == 0

    def test_payment_delete_returns_money(self, state, card):
        actions.add_credit_expense(state, card.id, "Shop", 5000, "2024-01-05", "Market")
        payment = actions.pay_card_debt(state, card.id, 3000, "2024-01-10")
        actions.delete_expense(state, payment.id)
        assert wallet.balance(state) == 0
        assert card_debt(card, state.expenses) == 5000

    def test_fractional_amount_rejected_before_removal(self, state):
        exp = Expense(id=7, merchant="Cafe", amount=10.5, method="Nakit",
                      category="Yemek", iso_date="2024-01-05")
        state.expenses.append(exp)
        with pytest.raises(ValidationError, match="integer"):
            actions.delete_expense(state, 7)
        assert state.expenses == [exp]
        assert state.balance_logs == []

    def test_restored_fractional_amount_deletes_cleanly(self, state):
        doc = {
            "dataVersion": 2,
            "expenses": [{"id": 1, "merchant": "Cafe", "amount": 8999.1, "method": "Nakit",
                          "category": "Yemek", "isoDate": "2026-01-05"}],
            "cards": [],
        }
        restored = import_backup(state, doc)
        assert restored.expenses[0].amount == 8999
        assert type(restored.expenses[0].amount) is int

        actions.delete_expense(restored, 1, today=date(2026, 1, 6))
        assert restored.expenses == []
        assert wallet.balance(restored) == 8999


class TestMerchants:
    def test_forget(self, state):
        actions.remember_merchant(state, "Cafe")
        assert actions.forget_merchant(state, "CAFE")
        assert state.merchants == []
        assert not actions.forget_merchant(state, "Cafe")


def _assert_wallet_matches_records(state, other=0):
    present = sum(e.amount for e in state.expenses if e.is_payment or not e.is_credit)
    assert wallet.balance(state) == -present + other


class TestWalletConsistency:
    def test_balance_tracks_records_through_every_change(self, state, card):
        today = date(2024, 1, 20)
        cash = actions.add_expense(state, "Cafe", 2000, "Nakit", "Yemek", "2024-01-05")
        _assert_wallet_matches_records(state)

        actions.edit_expense(state, cash.id, amount=2750, today=today)
        _assert_wallet_matches_records(state)

        wallet.add_manual_entry(state, "Salary", 100000, "2024-01-06")
        _assert_wallet_matches_records(state, other=100000)

        (spend,) = actions.add_credit_expense(state, card.id, "Shop", 5000, "2024-01-07", "Market")
        _assert_wallet_matches_records(state, other=100000)

        payment = actions.pay_card_debt(state, card.id, 3000, "2024-01-10")
        _assert_wallet_matches_records(state, other=100000)

        actions.edit_expense(state, payment.id, amount=4000, today=today)
        _assert_wallet_matches_records(state, other=100000)

        actions.delete_expense(state, payment.id, today=today)
        _assert_wallet_matches_records(state, other=100000)

        actions.delete_expense(state, cash.id, today=today)
        _assert_wallet_matches_records(state, other=100000)

        actions.delete_expense(state, spend.id, today=today)
        assert state.expenses == []
        assert wallet.balance(state) == 100000
