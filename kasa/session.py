"""Ledger session: load, migrate, run recurring passes, persist.

A session owns the single LedgerState of the running process. `open()` is the
startup pass (load from the store, pull the sync file, migrate, process
recurring plans and income); `resume()` repeats the sync pull and the
recurring pass; `commit()` writes the state back to the store and, when one
is configured, the sync file.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Callable

from kasa.config import Config
from kasa.dates import HolidayCalendar
from kasa.ledger.actions import DEFAULT_PAYMENT_CATEGORY
from kasa.ledger.migration import link_card_references, round_fractional_amounts, run_migrations
from kasa.ledger.models import LedgerState
from kasa.ledger.recurring import (
    DEFAULT_RECURRING_CATEGORY,
    RecurringRunResult,
    process_recurring_income,
    process_recurring_plans,
)
from kasa.storage.document import apply_document, export_backup, import_backup
from kasa.storage.repository import SYNC_FILE_KEY, Repository
from kasa.sync.transport import SyncFile

logger = logging.getLogger(__name__)


class LedgerSession:
    """Owns the ledger state between the store, the sync file and commands.

    Args:
        repo: Key-value store, migrations already applied.
        config: Optional Config for defaults and holidays.
        sync: Optional SyncFile; when omitted the path cached in the store is used.
        today_fn: Clock for the recurring passes.
    """

    def __init__(
        self,
        repo: Repository,
        config: Config | None = None,
        sync: SyncFile | None = None,
        today_fn: Callable[[], date] = date.today,
    ):
        self.repo = repo
        self.config = config
        self.sync = sync
        self.today_fn = today_fn
        self._state: LedgerState | None = None

    @property
    def state(self) -> LedgerState:
        if self._state is None:
            raise RuntimeError("Session is not open")
        return self._state

    # ── Config shortcuts ────────────────────────────────────

    @property
    def default_methods(self) -> list[str]:
        return self.config.default_methods if self.config else []

    @property
    def default_categories(self) -> list[str]:
        return self.config.default_categories if self.config else []

    @property
    def recurring_category(self) -> str:
        return self.config.recurring_category if self.config else DEFAULT_RECURRING_CATEGORY

    @property
    def payment_category(self) -> str:
        return self.config.payment_category if self.config else DEFAULT_PAYMENT_CATEGORY

    @property
    def holidays(self) -> HolidayCalendar:
        return self.config.holiday_calendar if self.config else HolidayCalendar()

    @property
    def locale(self) -> str:
        return self.config.locale if self.config else "tr"

    # ── Lifecycle ───────────────────────────────────────────

    def open(self) -> RecurringRunResult:
        """Startup pass: load, migrate, pull, then run the recurring engine.

        Migrations only touch the locally stored state; sync documents are
        written in the current format.
        """
        state = self.repo.load_state(self.default_methods, self.default_categories)
        self._state = state
        applied = run_migrations(state)
        if applied:
            logger.info("Applied data migrations: %s", applied)
        if self.sync is None:
            cached = self.repo.get(SYNC_FILE_KEY)
            if cached:
                self.sync = SyncFile(cached)
        if self.sync is not None:
            self.pull()
        result = self.run_recurring()
        self.commit()
        return result

    def resume(self) -> RecurringRunResult:
        """Pull external changes and catch up on recurring obligations."""
        pulled = self.pull() if self.sync is not None else []
        result = self.run_recurring()
        if pulled or result.changed:
            self.commit()
        return result

    def run_recurring(self) -> RecurringRunResult:
        today = self.today_fn()
        result = process_recurring_plans(self.state, today, self.recurring_category)
        result.income = process_recurring_income(self.state, today)
        if result.changed:
            logger.info(
                "Recurring pass: %d materialized, %d skipped, %d income",
                len(result.materialized), len(result.skipped), len(result.income),
            )
        return result

    def pull(self) -> list[str]:
        """Merge the sync file into the state. Returns the fields applied."""
        snapshot = self.sync.read()
        if snapshot.document is None:
            return []
        applied = apply_document(self.state, snapshot.document)
        round_fractional_amounts(self.state)
        if snapshot.last_sync:
            self.state.last_sync = snapshot.last_sync
        link_card_references(self.state)
        return applied

    def commit(self, now: datetime | None = None) -> None:
        """Persist the state to the store and the sync file."""
        if self.sync is not None:
            document = self.sync.write(self.state, now)
            self.state.last_sync = document["lastSync"]
        self.repo.save_state(self.state)

    def set_sync_file(self, sync: SyncFile) -> None:
        """Switch the sync file and remember its path in the store."""
        self.sync = sync
        self.repo.set(SYNC_FILE_KEY, str(sync.path))
        logger.info("Sync file set to %s", sync.path)

    # ── Backups ─────────────────────────────────────────────

    def export_backup(self, now: datetime | None = None) -> dict:
        return export_backup(self.state, now)

    def restore_backup(self, document: dict) -> list[int]:
        """Replace the state with a backup, migrate it, and persist it."""
        import_backup(self.state, document, self.default_methods, self.default_categories)
        applied = run_migrations(self.state)
        self.commit()
        return applied
