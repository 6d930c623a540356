"""Tests for kasa.money — minor-unit conversion and formatting."""

import math

import pytest

from kasa.money import format_money, split_installments, to_display, to_minor_units


class TestToMinorUnits:
    def test_whole_amount(self):
        assert to_minor_units(100) == 10000

    def test_fractional_amount(self):
        assert to_minor_units(100.5) == 10050

    def test_float_noise_rounds_half_up(self):
        assert to_minor_units(19.99) == 1999

    def test_string_input(self):
        assert to_minor_units("42.10") == 4210

    @pytest.mark.parametrize("value", [None, "abc", math.nan, math.inf, True])
    def test_unusable_input_is_zero(self, value):
        assert to_minor_units(value) == 0

    def test_negative(self):
        assert to_minor_units(-12.5) == -1250


class TestToDisplay:
    def test_inverse(self):
        assert to_display(10050) == 100.5

    def test_none(self):
        assert to_display(None) == 0.0


class TestFormatMoney:
    def test_turkish_grouping(self):
        assert format_money(123450) == "1.234,5"

    def test_english_grouping(self):
        assert format_money(123450, "en") == "1,234.5"

    def test_whole_drops_fraction(self):
        assert format_money(500000) == "5.000"

    def test_two_digits(self):
        assert format_money(1205) == "12,05"

    def test_negative(self):
        assert format_money(-2000) == "-20"

    def test_unknown_locale_falls_back(self):
        assert format_money(100, "xx") == "1"


class TestSplitInstallments:
    def test_remainder_goes_first(self):
        assert split_installments(1000, 3) == [334, 333, 333]

    def test_parts_sum_to_total(self):
        assert sum(split_installments(99999, 7)) == 99999

    def test_single(self):
        assert split_installments(500, 1) == [500]

    def test_zero_count_rejected(self):
        with pytest.raises(ValueError):
            split_installments(100, 0)
