"""Local-calendar date helpers, month-clamped arithmetic, business days.

Date-only values are always rendered from local calendar fields so they
never shift across a timezone boundary. Month arithmetic clamps the day to
the target month's length (day 31 in February -> 28/29).
"""

from __future__ import annotations

import calendar
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

MAX_BUSINESS_DAY_STEPS = 60

_ISO_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")
_DOTTED_RE = re.compile(r"^(\d{2})\.(\d{2})\.(\d{4})$")
_MONTH_KEY_RE = re.compile(r"^(\d{4})-(\d{2})$")


# ── Formatting ───────────────────────────────────────────


def local_date_iso(value: date | datetime | None = None) -> str:
    """Render YYYY-MM-DD from local calendar fields (today when omitted)."""
    if value is None:
        value = date.today()
    elif isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone()
        value = value.date()
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def format_display_date(iso: str) -> str:
    """'2026-02-08' -> '08.02.2026'. Unparsable input is returned unchanged."""
    parsed = parse_any_date(iso)
    if parsed is None:
        return iso
    return f"{parsed.day:02d}.{parsed.month:02d}.{parsed.year:04d}"


def parse_any_date(value: str | None) -> date | None:
    """Parse ISO (optionally with a time part) or DD.MM.YYYY strings."""
    if not value:
        return None
    value = value.strip()
    m = _ISO_RE.match(value)
    if m:
        year, month, day = (int(g) for g in m.groups())
    else:
        m = _DOTTED_RE.match(value)
        if not m:
            return None
        day, month, year = (int(g) for g in m.groups())
    try:
        return date(year, month, day)
    except ValueError:
        return None


def is_valid_date(value: str | None) -> bool:
    """Accept parseable dates with a year between 2000 and 2100."""
    parsed = parse_any_date(value)
    return parsed is not None and 2000 <= parsed.year <= 2100


# ── Month arithmetic ─────────────────────────────────────


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def clamped_date(year: int, month: int, day: int) -> date:
    """Build a date, normalizing month overflow and clamping the day.

    `month` is 1-based and may fall outside 1..12 (0 is December of the
    previous year, 13 is January of the next).
    """
    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    day = max(1, min(day, days_in_month(year, month)))
    return date(year, month, day)


def add_months(value: date, months: int) -> date:
    return clamped_date(value.year, value.month + months, value.day)


def month_key(value: date) -> str:
    """'YYYY-MM' marker for the month containing `value`."""
    return f"{value.year:04d}-{value.month:02d}"


def parse_month_key(key: str) -> tuple[int, int]:
    m = _MONTH_KEY_RE.match(key or "")
    if not m:
        raise ValueError(f"Invalid month marker: {key!r}")
    year, month = int(m.group(1)), int(m.group(2))
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month marker: {key!r}")
    return year, month


# ── Holidays & business days ─────────────────────────────

DEFAULT_FIXED_HOLIDAYS = {
    "01-01": "New Year's Day",
    "04-23": "National Sovereignty and Children's Day",
    "05-01": "Labour and Solidarity Day",
    "05-19": "Commemoration of Atatürk, Youth and Sports Day",
    "07-15": "Democracy and National Unity Day",
    "08-30": "Victory Day",
    "10-28": "Republic Day Eve",
    "10-29": "Republic Day",
}

DEFAULT_MOVABLE_HOLIDAYS = {
    2026: {
        "2026-03-19": "Ramadan Feast Eve",
        "2026-03-20": "Ramadan Feast Day 1",
        "2026-03-21": "Ramadan Feast Day 2",
        "2026-03-22": "Ramadan Feast Day 3",
        "2026-05-26": "Sacrifice Feast Eve",
        "2026-05-27": "Sacrifice Feast Day 1",
        "2026-05-28": "Sacrifice Feast Day 2",
        "2026-05-29": "Sacrifice Feast Day 3",
        "2026-05-30": "Sacrifice Feast Day 4",
    },
    2027: {
        "2027-03-08": "Ramadan Feast Eve",
        "2027-03-09": "Ramadan Feast Day 1",
        "2027-03-10": "Ramadan Feast Day 2",
        "2027-03-11": "Ramadan Feast Day 3",
        "2027-05-15": "Sacrifice Feast Eve",
        "2027-05-16": "Sacrifice Feast Day 1",
        "2027-05-17": "Sacrifice Feast Day 2",
        "2027-05-18": "Sacrifice Feast Day 3",
        "2027-05-19": "Sacrifice Feast Day 4",
    },
}


@dataclass
class HolidayCalendar:
    """Fixed month-day holidays plus movable holidays listed per year.

    Years absent from `movable` only get the fixed holidays.
    """
    fixed: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_FIXED_HOLIDAYS))
    movable: dict[int, dict[str, str]] = field(
        default_factory=lambda: {y: dict(d) for y, d in DEFAULT_MOVABLE_HOLIDAYS.items()}
    )

    def holidays_for(self, year: int) -> dict[str, str]:
        """Return {iso_date: name} for one calendar year."""
        result = {f"{year:04d}-{md}": name for md, name in self.fixed.items()}
        for iso, name in self.movable.get(year, {}).items():
            if iso in result:
                result[iso] = f"{result[iso]} & {name}"
            else:
                result[iso] = name
        return result

    def is_holiday(self, value: date) -> bool:
        return local_date_iso(value) in self.holidays_for(value.year)

    @classmethod
    def from_dict(cls, data: dict) -> HolidayCalendar:
        """Build from the holidays.yaml structure: {fixed: {...}, movable: {year: {...}}}."""
        fixed = {str(k): str(v) for k, v in (data.get("fixed") or {}).items()}
        movable: dict[int, dict[str, str]] = {}
        for year, entries in (data.get("movable") or {}).items():
            movable[int(year)] = {str(k): str(v) for k, v in (entries or {}).items()}
        return cls(fixed=fixed, movable=movable)


def is_business_day(value: date, holidays: HolidayCalendar | None = None) -> bool:
    holidays = holidays or HolidayCalendar()
    return value.weekday() < 5 and not holidays.is_holiday(value)


def next_business_day(value: date, holidays: HolidayCalendar | None = None) -> date:
    """Return `value` or the first following day that is not a weekend or holiday.

    Bounded to MAX_BUSINESS_DAY_STEPS checks.
    """
    holidays = holidays or HolidayCalendar()
    current = value
    for _ in range(MAX_BUSINESS_DAY_STEPS):
        if is_business_day(current, holidays):
            break
        current += timedelta(days=1)
    return current
