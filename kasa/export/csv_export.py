"""Spreadsheet-friendly exports of the expense list.

Two flavours:
  csv  semicolon separated, for spreadsheet apps using a comma decimal
  tsv  tab separated with the description column, for pasting into Sheets
"""

from __future__ import annotations

import csv
import io
import logging
from datetime import date
from pathlib import Path

from kasa.ledger.models import Expense, LedgerState
from kasa.money import MINOR_PER_MAJOR

logger = logging.getLogger(__name__)

CSV_HEADERS = ["Tarih", "Yer", "Tutar", "Yöntem", "Kategori", "Tür"]
TSV_HEADERS = ["Tarih", "Yer", "Aciklama", "Tutar", "Yontem", "Kategori"]

KIND_CARD = "Kredi Kartı"
KIND_CASH = "Nakit/Banka"


def decimal_amount(minor: int) -> str:
    """10050 -> '100,50'; no grouping so spreadsheets parse it as a number."""
    sign = "-" if minor < 0 else ""
    whole, frac = divmod(abs(int(minor)), MINOR_PER_MAJOR)
    return f"{sign}{whole},{frac:02d}"


def csv_row(exp: Expense) -> list[str]:
    return [
        exp.display_date,
        exp.merchant,
        decimal_amount(exp.amount),
        exp.method,
        exp.category,
        KIND_CARD if exp.is_credit else KIND_CASH,
    ]


def tsv_row(exp: Expense) -> list[str]:
    return [
        exp.display_date,
        exp.merchant,
        exp.description or "",
        decimal_amount(exp.amount),
        exp.method,
        exp.category,
    ]


def render(expenses: list[Expense], fmt: str = "csv") -> str:
    """Render expenses (oldest first) as csv or tsv text."""
    if fmt == "csv":
        headers, to_row, delimiter = CSV_HEADERS, csv_row, ";"
    elif fmt == "tsv":
        headers, to_row, delimiter = TSV_HEADERS, tsv_row, "\t"
    else:
        raise ValueError(f"Unknown export format: {fmt!r}")
    buf = io.StringIO()
    writer = csv.writer(buf, delimiter=delimiter, lineterminator="\n")
    writer.writerow(headers)
    for exp in sorted(expenses, key=lambda e: e.iso_date):
        writer.writerow(to_row(exp))
    return buf.getvalue()


def export_file_name(fmt: str, today: date | None = None) -> str:
    today = today or date.today()
    stem = "harcamalar" if fmt == "csv" else "google_sheets_import"
    return f"{stem}_{today.isoformat()}.{fmt}"


def write_export(state: LedgerState, out_dir: Path, fmt: str = "csv", today: date | None = None) -> Path:
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / export_file_name(fmt, today)
    # utf-8-sig so spreadsheet apps detect the encoding of Turkish characters
    path.write_text(render(state.expenses, fmt), encoding="utf-8-sig")
    logger.info("Exported %d expenses to %s", len(state.expenses), path)
    return path
