"""Google Sheets push: one-way ledger → Sheets mirror.

Transforms ledger records into sheet rows, batches writes to respect the
Google Sheets API quota (50 writes/minute), and supports a full rebuild.

The gspread spreadsheet is injected via the constructor; tests pass a mock.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from datetime import date

from kasa.dates import HolidayCalendar, format_display_date, local_date_iso
from kasa.ledger.cards import billing_window, card_debt, due_date, period_debt, remaining_limit
from kasa.ledger.models import BalanceLog, Card, Expense, LedgerState
from kasa.money import to_display

logger = logging.getLogger(__name__)

MAX_WRITES_PER_MINUTE = 50
BATCH_SIZE = 100

SHEET_EXPENSES = "Expenses"
SHEET_WALLET = "Wallet"
SHEET_CARDS = "Cards"

EXPENSE_HEADERS = [
    "id", "date", "merchant", "description", "amount", "method",
    "category", "is_credit", "is_payment", "is_recurring", "card_id",
]
WALLET_HEADERS = ["id", "date", "title", "amount", "created_at"]
CARD_HEADERS = [
    "id", "name", "cutoff", "limit", "debt", "remaining",
    "period_start", "period_end", "period_debt", "due_date",
]


# ── Data transformation ──────────────────────────────────


def _val(v: object) -> str | float | int:
    """Convert a value for Sheets: None → empty string, else pass through."""
    if v is None:
        return ""
    return v


def expense_to_row(exp: Expense) -> list:
    return [
        str(exp.id),
        exp.iso_date,
        exp.merchant,
        exp.description,
        to_display(exp.amount),
        exp.method,
        exp.category,
        exp.is_credit,
        exp.is_payment,
        exp.is_recurring,
        _val(exp.card_id and str(exp.card_id)),
    ]


def balance_log_to_row(log: BalanceLog) -> list:
    return [str(log.id), log.date, log.title, to_display(log.amount), _val(log.created_at)]


def card_to_row(
    card: Card, expenses: list[Expense], reference_date: date,
    holidays: HolidayCalendar | None = None,
) -> list:
    window = billing_window(card, reference_date)
    return [
        str(card.id),
        card.name,
        card.cutoff,
        to_display(card.limit),
        to_display(card_debt(card, expenses)),
        to_display(remaining_limit(card, expenses)),
        format_display_date(local_date_iso(window.start)),
        format_display_date(local_date_iso(window.end)),
        to_display(period_debt(card, window, expenses)),
        format_display_date(local_date_iso(due_date(window.end, holidays))),
    ]


# ── Batch result ─────────────────────────────────────────


@dataclass
class PushResult:
    """Result of a push operation."""
    sheet: str
    rows_pushed: int
    api_calls: int


# ── SheetsPush ───────────────────────────────────────────


class SheetsPush:
    """One-way ledger → Google Sheets sync with batching and rate limiting.

    Args:
        spreadsheet: A gspread.Spreadsheet instance (or mock).
    """

    def __init__(self, spreadsheet: object):
        self.spreadsheet = spreadsheet
        self.pending_appends: dict[str, list[list]] = {}
        self.pending_clears: set[str] = set()
        self._write_times: deque[float] = deque()

    def queue_append(self, sheet_name: str, rows: list[list]) -> None:
        """Queue rows for append to a sheet. Call flush() to execute."""
        self.pending_appends.setdefault(sheet_name, []).extend(rows)

    def queue_clear(self, sheet_name: str) -> None:
        self.pending_clears.add(sheet_name)

    def _wait_for_rate_limit(self) -> None:
        """Sleep if we're approaching the write rate limit."""
        now = time.monotonic()
        cutoff = now - 60.0
        while self._write_times and self._write_times[0] <= cutoff:
            self._write_times.popleft()

        if len(self._write_times) >= MAX_WRITES_PER_MINUTE:
            sleep_until = self._write_times[0] + 60.0
            time.sleep(sleep_until - now)

    def _record_write(self) -> None:
        self._write_times.append(time.monotonic())

    def flush(self) -> list[PushResult]:
        """Execute pending clears, then appends in batches of BATCH_SIZE rows.

        Returns a PushResult per sheet written. A failing sheet is logged and
        left queued; the remaining sheets are still processed.
        """
        results: list[PushResult] = []
        errors: list[str] = []

        for sheet_name in sorted(self.pending_clears):
            try:
                self._wait_for_rate_limit()
                self.spreadsheet.worksheet(sheet_name).clear()
                self._record_write()
                self.pending_clears.discard(sheet_name)
            except Exception as e:
                logger.error("Failed to clear sheet '%s': %s", sheet_name, e)
                errors.append(f"clear:{sheet_name}")

        for sheet_name, rows in list(self.pending_appends.items()):
            if not rows:
                continue
            try:
                ws = self.spreadsheet.worksheet(sheet_name)
                api_calls = 0
                for i in range(0, len(rows), BATCH_SIZE):
                    self._wait_for_rate_limit()
                    ws.append_rows(rows[i : i + BATCH_SIZE], value_input_option="RAW")
                    self._record_write()
                    api_calls += 1
                results.append(PushResult(sheet=sheet_name, rows_pushed=len(rows), api_calls=api_calls))
                del self.pending_appends[sheet_name]
            except Exception as e:
                logger.error("Failed to push to sheet '%s': %s", sheet_name, e)
                errors.append(f"push:{sheet_name}")

        if errors:
            logger.warning("Sheets push completed with %d error(s): %s", len(errors), errors)
        return results

    # ── High-level push methods ──────────────────────────

    def push_expenses(self, expenses: list[Expense]) -> PushResult | None:
        """Append expenses to the Expenses sheet."""
        if not expenses:
            return None
        self.queue_append(SHEET_EXPENSES, [expense_to_row(e) for e in expenses])
        results = self.flush()
        return next((r for r in results if r.sheet == SHEET_EXPENSES), None)

    def full_rebuild(
        self, state: LedgerState, reference_date: date | None = None,
        holidays: HolidayCalendar | None = None,
    ) -> list[PushResult]:
        """Clear every sheet and re-push the whole ledger."""
        reference_date = reference_date or date.today()
        for name in (SHEET_EXPENSES, SHEET_WALLET, SHEET_CARDS):
            self.queue_clear(name)

        self.queue_append(SHEET_EXPENSES, [EXPENSE_HEADERS])
        self.queue_append(SHEET_WALLET, [WALLET_HEADERS])
        self.queue_append(SHEET_CARDS, [CARD_HEADERS])

        expenses = sorted(state.expenses, key=lambda e: e.iso_date)
        self.queue_append(SHEET_EXPENSES, [expense_to_row(e) for e in expenses])
        logs = sorted(state.balance_logs, key=lambda log: (log.date, log.created_at or ""))
        self.queue_append(SHEET_WALLET, [balance_log_to_row(log) for log in logs])
        self.queue_append(
            SHEET_CARDS,
            [card_to_row(c, state.expenses, reference_date, holidays) for c in state.cards],
        )
        return self.flush()
