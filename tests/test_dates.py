"""Tests for kasa.dates — local dates, month arithmetic, business days."""

from datetime import date, datetime

import pytest

from kasa.dates import (
    HolidayCalendar,
    add_months,
    clamped_date,
    format_display_date,
    is_business_day,
    is_valid_date,
    local_date_iso,
    month_key,
    next_business_day,
    parse_any_date,
    parse_month_key,
)


class TestFormatting:
    def test_local_date_iso_from_date(self):
        assert local_date_iso(date(2026, 2, 8)) == "2026-02-08"

    def test_local_date_iso_from_naive_datetime(self):
        assert local_date_iso(datetime(2026, 2, 8, 23, 59)) == "2026-02-08"

    def test_display_date(self):
        assert format_display_date("2026-02-08") == "08.02.2026"

    def test_display_date_passthrough(self):
        assert format_display_date("garbage") == "garbage"


class TestParsing:
    def test_iso(self):
        assert parse_any_date("2026-02-08") == date(2026, 2, 8)

    def test_iso_with_time(self):
        assert parse_any_date("2026-02-08T10:00:00Z") == date(2026, 2, 8)

    def test_dotted(self):
        assert parse_any_date("08.02.2026") == date(2026, 2, 8)

    def test_impossible_date(self):
        assert parse_any_date("2026-02-30") is None

    @pytest.mark.parametrize("value", [None, "", "yesterday"])
    def test_unparsable(self, value):
        assert parse_any_date(value) is None

    def test_valid_range(self):
        assert is_valid_date("2026-01-01")
        assert not is_valid_date("1999-12-31")
        assert not is_valid_date("2101-01-01")


class TestMonthArithmetic:
    def test_day_clamped_in_leap_february(self):
        assert clamped_date(2024, 2, 31) == date(2024, 2, 29)

    def test_day_clamped_in_common_february(self):
        assert clamped_date(2026, 2, 31) == date(2026, 2, 28)

    def test_month_zero_is_previous_december(self):
        assert clamped_date(2024, 0, 15) == date(2023, 12, 15)

    def test_month_thirteen_is_next_january(self):
        assert clamped_date(2024, 13, 15) == date(2025, 1, 15)

    def test_add_months_clamps(self):
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)

    def test_add_months_across_year(self):
        assert add_months(date(2025, 11, 30), 3) == date(2026, 2, 28)

    def test_month_key_roundtrip(self):
        assert month_key(date(2026, 3, 9)) == "2026-03"
        assert parse_month_key("2026-03") == (2026, 3)

    @pytest.mark.parametrize("key", ["2026-13", "2026/03", "", "26-03"])
    def test_invalid_month_key(self, key):
        with pytest.raises(ValueError):
            parse_month_key(key)


class TestHolidayCalendar:
    def test_fixed_holiday_every_year(self):
        cal = HolidayCalendar()
        assert cal.is_holiday(date(2031, 10, 29))

    def test_movable_only_in_listed_year(self):
        cal = HolidayCalendar()
        assert cal.is_holiday(date(2026, 3, 20))
        assert not cal.is_holiday(date(2025, 3, 20))

    def test_colliding_names_are_joined(self):
        cal = HolidayCalendar(fixed={"05-19": "Youth Day"}, movable={2027: {"2027-05-19": "Feast"}})
        assert cal.holidays_for(2027)["2027-05-19"] == "Youth Day & Feast"

    def test_from_dict(self):
        cal = HolidayCalendar.from_dict({
            "fixed": {"01-01": "New Year"},
            "movable": {2030: {"2030-02-05": "Feast"}},
        })
        assert cal.is_holiday(date(2030, 2, 5))
        assert cal.is_holiday(date(2030, 1, 1))
        assert not cal.is_holiday(date(2030, 10, 29))


class TestBusinessDays:
    def test_weekday_is_business_day(self):
        assert is_business_day(date(2026, 10, 14))

    def test_weekend_rolls_to_monday(self):
        assert next_business_day(date(2026, 10, 10)) == date(2026, 10, 12)

    def test_consecutive_holidays_are_skipped(self):
        # Oct 28 and 29 are holidays
        assert next_business_day(date(2026, 10, 28)) == date(2026, 10, 30)

    def test_holiday_then_weekend(self):
        # Fri 20 and Sat 21 are holidays, Sun 22 is a weekend
        assert next_business_day(date(2026, 3, 20)) == date(2026, 3, 23)

    def test_business_day_unchanged(self):
        assert next_business_day(date(2026, 10, 14)) == date(2026, 10, 14)
