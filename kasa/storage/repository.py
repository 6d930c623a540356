"""Repository: key-value persistence of the ledger state in SQLite.

Each collection and setting is stored under its own key as a JSON value in
the kv_store table. Connection management uses a single connection with WAL
mode enabled.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path

from kasa.ledger.migration import round_fractional_amounts
from kasa.ledger.models import DATA_VERSION_LEGACY, DATA_VERSION_MINOR_UNITS, LedgerState
from kasa.storage.document import COLLECTIONS, FLAGS, STRING_LISTS, apply_document

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

# store key -> document field
STATE_KEYS = {
    "expenses": "expenses",
    "cards": "cards",
    "assets": "assets",
    "methods": "methods",
    "categories": "categories",
    "merchants": "merchants",
    "recurring_plans": "recurringPlans",
    "recurring_income": "recurringIncome",
    "balance_logs": "balanceLogs",
    "is_dark": "isDark",
    "is_privacy_mode": "isPrivacyMode",
    "last_sync": "lastSync",
}
DATA_VERSION_KEY = "data_version"
SYNC_FILE_KEY = "sync_file"


class Repository:
    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode = WAL")
        return self._conn

    def close(self):
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # ── Migrations ──────────────────────────────────────────

    def apply_migrations(self, migrations_dir: Path = MIGRATIONS_DIR):
        """Apply all pending SQL migrations in order.

        Each migration runs in a transaction: if the SQL fails, the
        schema_version row is not inserted, allowing retry on next startup.
        """
        self.conn.execute(
            "CREATE TABLE IF NOT EXISTS schema_version ("
            "  version INTEGER PRIMARY KEY,"
            "  description TEXT,"
            "  applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP"
            ")"
        )
        self.conn.commit()

        row = self.conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
        current = row[0] or 0

        for sql_file in sorted(Path(migrations_dir).glob("*.sql")):
            version = int(sql_file.name.split("_")[0])
            if version <= current:
                continue
            try:
                self.conn.execute("BEGIN")
                # executescript auto-commits, so statements are run one by one
                for statement in sql_file.read_text().split(";"):
                    statement = statement.strip()
                    if statement:
                        self.conn.execute(statement)
                self.conn.execute(
                    "INSERT INTO schema_version (version, description) VALUES (?, ?)",
                    (version, sql_file.stem),
                )
                self.conn.commit()
                logger.info("Applied schema migration %s", sql_file.stem)
            except Exception:
                self.conn.rollback()
                raise

    def schema_version(self) -> int:
        row = self.conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return row[0] or 0

    # ── Key-value access ────────────────────────────────────

    def get(self, key: str, default=None):
        row = self.conn.execute(
            "SELECT value FROM kv_store WHERE key = ?", (key,)
        ).fetchone()
        if row is None:
            return default
        return json.loads(row["value"])

    def set(self, key: str, value):
        self.conn.execute(
            "INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)"
            " ON CONFLICT(key) DO UPDATE SET value = excluded.value,"
            " updated_at = excluded.updated_at",
            (key, json.dumps(value, ensure_ascii=False)),
        )
        self.conn.commit()

    def delete(self, key: str) -> bool:
        cur = self.conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        self.conn.commit()
        return cur.rowcount > 0

    def keys(self) -> list[str]:
        rows = self.conn.execute("SELECT key FROM kv_store ORDER BY key").fetchall()
        return [r["key"] for r in rows]

    # ── Ledger state ────────────────────────────────────────

    def load_state(
        self, default_methods: list[str] | None = None,
        default_categories: list[str] | None = None,
    ) -> LedgerState:
        """Read every stored key into a fresh LedgerState.

        Missing keys fall back to empty collections (or the given default
        methods/categories) and data version 1.
        """
        state = LedgerState(
            methods=list(default_methods or []),
            categories=list(default_categories or []),
        )
        rows = self.conn.execute("SELECT key, value FROM kv_store").fetchall()
        stored = {r["key"]: json.loads(r["value"]) for r in rows}
        doc = {field: stored[key] for key, field in STATE_KEYS.items() if key in stored}
        apply_document(state, doc)
        state.data_version = int(stored.get(DATA_VERSION_KEY) or DATA_VERSION_LEGACY)
        if state.data_version >= DATA_VERSION_MINOR_UNITS:
            round_fractional_amounts(state)
        return state

    def save_state(self, state: LedgerState):
        """Write every key of the state in one transaction."""
        values = {}
        for field_name, (attr, encode, _) in COLLECTIONS.items():
            values[field_name] = [encode(item) for item in getattr(state, attr)]
        for field_name, attr in STRING_LISTS.items():
            values[field_name] = list(getattr(state, attr))
        for field_name, attr in FLAGS.items():
            values[field_name] = bool(getattr(state, attr))
        values["lastSync"] = state.last_sync

        rows = [(key, json.dumps(values[field], ensure_ascii=False)) for key, field in STATE_KEYS.items()]
        rows.append((DATA_VERSION_KEY, json.dumps(state.data_version)))
        try:
            self.conn.execute("BEGIN")
            self.conn.executemany(
                "INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)"
                " ON CONFLICT(key) DO UPDATE SET value = excluded.value,"
                " updated_at = excluded.updated_at",
                rows,
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        logger.debug("Saved ledger state (%d keys)", len(rows))
