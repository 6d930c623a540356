"""Tests for kasa.export.csv_export."""

from datetime import date

import pytest

from kasa.export.csv_export import (
    CSV_HEADERS,
    KIND_CARD,
    KIND_CASH,
    decimal_amount,
    export_file_name,
    render,
    write_export,
)
from kasa.ledger.models import Expense, LedgerState

TODAY = date(2026, 2, 8)


def _exp(**kw) -> Expense:
    defaults = dict(merchant="Çay Evi", amount=10050, method="Nakit", category="Yemek",
                    iso_date="2026-02-01")
    defaults.update(kw)
    return Expense(**defaults)


class TestDecimalAmount:
    @pytest.mark.parametrize("minor,expected", [
        (10050, "100,50"),
        (5, "0,05"),
        (0, "0,00"),
        (123456789, "1234567,89"),
        (-2000, "-20,00"),
    ])
    def test_format(self, minor, expected):
        assert decimal_amount(minor) == expected


class TestRender:
    def test_csv_header_and_row(self):
        lines = render([_exp()], "csv").splitlines()
        assert lines[0] == ";".join(CSV_HEADERS)
        assert lines[1] == f"01.02.2026;Çay Evi;100,50;Nakit;Yemek;{KIND_CASH}"

    def test_csv_credit_kind(self):
        text = render([_exp(method="Bonus", is_credit=True, card_id=1)], "csv")
        assert text.splitlines()[1].endswith(KIND_CARD)

    def test_tsv_includes_description(self):
        lines = render([_exp(description="öğle")], "tsv").splitlines()
        assert lines[1].split("\t") == ["01.02.2026", "Çay Evi", "öğle", "100,50", "Nakit", "Yemek"]

    def test_sorted_oldest_first(self):
        text = render([_exp(merchant="B", iso_date="2026-02-05"),
                       _exp(merchant="A", iso_date="2026-01-05")], "csv")
        rows = text.splitlines()[1:]
        assert rows[0].split(";")[1] == "A"
        assert rows[1].split(";")[1] == "B"

    def test_delimiter_in_field_is_quoted(self):
        text = render([_exp(merchant="A;B")], "csv")
        assert '"A;B"' in text

    def test_unknown_format(self):
        with pytest.raises(ValueError, match="xlsx"):
            render([], "xlsx")


class TestWriteExport:
    def test_file_names(self):
        assert export_file_name("csv", TODAY) == "harcamalar_2026-02-08.csv"
        assert export_file_name("tsv", TODAY) == "google_sheets_import_2026-02-08.tsv"

    def test_writes_with_bom(self, tmp_path):
        state = LedgerState(expenses=[_exp()])
        path = write_export(state, tmp_path / "out", "csv", TODAY)
        assert path.name == "harcamalar_2026-02-08.csv"
        raw = path.read_bytes()
        assert raw.startswith(b"\xef\xbb\xbf")
        assert "Çay Evi" in raw.decode("utf-8-sig")
