"""Tests for the Google Sheets push module.

All tests use mock gspread objects — no live Google API needed.
"""

from __future__ import annotations

import time
from datetime import date
from unittest.mock import MagicMock, patch

import pytest

from kasa.export.sheets import (
    BATCH_SIZE,
    CARD_HEADERS,
    EXPENSE_HEADERS,
    SHEET_CARDS,
    SHEET_EXPENSES,
    SHEET_WALLET,
    WALLET_HEADERS,
    SheetsPush,
    balance_log_to_row,
    card_to_row,
    expense_to_row,
)
from kasa.ledger.models import BalanceLog, Card, Expense, LedgerState


# ── Fixtures ──────────────────────────────────────────────


@pytest.fixture
def mock_spreadsheet():
    """Mock gspread Spreadsheet with worksheet stubs."""
    ss = MagicMock()
    worksheets = {}

    def get_worksheet(name):
        if name not in worksheets:
            ws = MagicMock()
            ws.append_rows = MagicMock()
            ws.clear = MagicMock()
            worksheets[name] = ws
        return worksheets[name]

    ss.worksheet = MagicMock(side_effect=get_worksheet)
    return ss


@pytest.fixture
def push(mock_spreadsheet):
    return SheetsPush(mock_spreadsheet)


@pytest.fixture
def card():
    return Card(id=7, name="Bonus", cutoff=15, limit=5000000)


def _exp(**kw) -> Expense:
    defaults = dict(merchant="Market", amount=10050, method="Nakit", category="Market",
                    iso_date="2024-01-05")
    defaults.update(kw)
    return Expense(**defaults)


# ── Data transformation tests ─────────────────────────────


class TestExpenseToRow:
    def test_all_fields(self):
        exp = _exp(id=1, description="weekly", method="Bonus", is_credit=True, card_id=7)
        row = expense_to_row(exp)
        assert row == ["1", "2024-01-05", "Market", "weekly", 100.5, "Bonus", "Market",
                       True, False, False, "7"]

    def test_no_card_becomes_empty(self):
        assert expense_to_row(_exp())[10] == ""

    def test_row_length_matches_headers(self):
        assert len(expense_to_row(_exp())) == len(EXPENSE_HEADERS)


class TestBalanceLogToRow:
    def test_all_fields(self):
        log = BalanceLog(id=3, title="Salary", amount=1500000, date="2024-01-01",
                         created_at="2024-01-01T09:00:00")
        assert balance_log_to_row(log) == ["3", "2024-01-01", "Salary", 15000.0,
                                           "2024-01-01T09:00:00"]

    def test_row_length_matches_headers(self):
        log = BalanceLog(title="x", amount=1, date="2024-01-01")
        assert len(balance_log_to_row(log)) == len(WALLET_HEADERS)


class TestCardToRow:
    def test_window_and_debt(self, card):
        expenses = [
            _exp(amount=300000, method="Bonus", is_credit=True, card_id=7, iso_date="2023-12-20"),
            _exp(amount=100000, method="Bonus", is_credit=True, card_id=7, iso_date="2023-11-20"),
            _exp(amount=50000, method="Nakit", is_payment=True, is_credit=True, card_id=7,
                 iso_date="2024-01-02"),
        ]
        row = card_to_row(card, expenses, date(2024, 1, 10))
        assert row[:4] == ["7", "Bonus", 15, 50000.0]
        assert row[4] == 3500.0
        assert row[5] == 46500.0
        assert row[6:8] == ["15.12.2023", "15.01.2024"]
        assert row[8] == 2500.0
        assert row[9] == "25.01.2024"

    def test_row_length_matches_headers(self, card):
        assert len(card_to_row(card, [], date(2024, 1, 10))) == len(CARD_HEADERS)


# ── Queue management tests ───────────────────────────────


class TestQueueManagement:
    def test_queue_append_accumulates(self, push):
        push.queue_append("T", [["a"]])
        push.queue_append("T", [["b"]])
        assert push.pending_appends["T"] == [["a"], ["b"]]

    def test_flush_clears_queues(self, push):
        push.queue_append("T", [["a"]])
        push.queue_clear("T")
        push.flush()
        assert push.pending_appends == {}
        assert push.pending_clears == set()

    def test_flush_calls_worksheet_append(self, push, mock_spreadsheet):
        push.queue_append("T", [["a"], ["b"]])
        results = push.flush()
        ws = mock_spreadsheet.worksheet("T")
        ws.append_rows.assert_called_once_with([["a"], ["b"]], value_input_option="RAW")
        assert results[0].rows_pushed == 2
        assert results[0].api_calls == 1

    def test_flush_empty_is_noop(self, push, mock_spreadsheet):
        assert push.flush() == []
        mock_spreadsheet.worksheet.assert_not_called()

    def test_failed_sheet_stays_queued(self, push, mock_spreadsheet):
        mock_spreadsheet.worksheet("Bad").append_rows.side_effect = RuntimeError("quota")
        push.queue_append("Bad", [["a"]])
        push.queue_append("Good", [["b"]])
        results = push.flush()
        assert [r.sheet for r in results] == ["Good"]
        assert push.pending_appends == {"Bad": [["a"]]}

    def test_failed_clear_stays_queued(self, push, mock_spreadsheet):
        mock_spreadsheet.worksheet("Bad").clear.side_effect = RuntimeError("quota")
        push.queue_clear("Bad")
        push.flush()
        assert push.pending_clears == {"Bad"}


# ── Batching tests ───────────────────────────────────────


class TestBatching:
    @pytest.mark.parametrize("rows,calls", [(1, 1), (BATCH_SIZE, 1), (2 * BATCH_SIZE, 2), (250, 3)])
    def test_batch_count(self, push, mock_spreadsheet, rows, calls):
        push.queue_append("T", [[str(i)] for i in range(rows)])
        push.flush()
        ws = mock_spreadsheet.worksheet("T")
        assert ws.append_rows.call_count == calls
        first_batch = ws.append_rows.call_args_list[0][0][0]
        assert len(first_batch) == min(rows, BATCH_SIZE)


# ── Rate limiting tests ──────────────────────────────────


class TestRateLimiting:
    def test_under_threshold_no_sleep(self, push):
        push.queue_append("T", [["row"]])
        with patch("time.sleep") as mock_sleep:
            push.flush()
            mock_sleep.assert_not_called()

    def test_old_timestamps_expire(self, push):
        old = time.monotonic() - 61
        for _ in range(50):
            push._write_times.append(old)

        push.queue_append("T", [["row"]])
        with patch("time.sleep") as mock_sleep:
            push.flush()
            mock_sleep.assert_not_called()
        assert len(push._write_times) == 1

    def test_at_threshold_sleeps(self, push):
        now = time.monotonic()
        for i in range(50):
            push._write_times.append(now - 10 + i * 0.1)

        push.queue_append("T", [["row"]])
        with patch("time.sleep") as mock_sleep:
            with patch("time.monotonic", side_effect=[now, now + 55]):
                push.flush()
            mock_sleep.assert_called_once()
            assert mock_sleep.call_args[0][0] == pytest.approx(50)


# ── High-level push methods ──────────────────────────────


class TestPushMethods:
    def test_push_expenses(self, push, mock_spreadsheet):
        result = push.push_expenses([_exp(), _exp()])
        assert result.sheet == SHEET_EXPENSES
        assert result.rows_pushed == 2

    def test_push_expenses_empty(self, push):
        assert push.push_expenses([]) is None

    def test_full_rebuild(self, push, mock_spreadsheet, card):
        state = LedgerState(
            expenses=[_exp(merchant="Later", iso_date="2024-01-08"),
                      _exp(merchant="Earlier", iso_date="2024-01-02")],
            cards=[card],
            balance_logs=[BalanceLog(title="Salary", amount=100, date="2024-01-01")],
        )
        results = push.full_rebuild(state, date(2024, 1, 10))

        for name in (SHEET_EXPENSES, SHEET_WALLET, SHEET_CARDS):
            mock_spreadsheet.worksheet(name).clear.assert_called_once()

        exp_rows = mock_spreadsheet.worksheet(SHEET_EXPENSES).append_rows.call_args[0][0]
        assert exp_rows[0] == EXPENSE_HEADERS
        assert [r[2] for r in exp_rows[1:]] == ["Earlier", "Later"]

        card_rows = mock_spreadsheet.worksheet(SHEET_CARDS).append_rows.call_args[0][0]
        assert card_rows[0] == CARD_HEADERS
        assert card_rows[1][1] == "Bonus"

        assert {r.sheet for r in results} == {SHEET_EXPENSES, SHEET_WALLET, SHEET_CARDS}

    def test_full_rebuild_empty_state_writes_headers(self, push, mock_spreadsheet):
        push.full_rebuild(LedgerState(), date(2024, 1, 10))
        wallet_rows = mock_spreadsheet.worksheet(SHEET_WALLET).append_rows.call_args[0][0]
        assert wallet_rows == [WALLET_HEADERS]
