"""Integer minor-unit money helpers.

Every stored currency value is an int count of hundredths. Conversion from
user input rounds half up (floor(x * 100 + 0.5)); conversion back divides
by 100. Quantities (asset units) are not money and never pass through here.
"""

from __future__ import annotations

import math

MINOR_PER_MAJOR = 100

# Separators per display locale: (thousands, decimal)
_LOCALE_SEPARATORS = {
    "tr": (".", ","),
    "en": (",", "."),
}


def _as_float(value: object) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(num) or math.isinf(num):
        return None
    return num


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def to_minor_units(value: object) -> int:
    """Convert a decimal major-unit value (e.g. 100.50) to minor units (10050).

    Returns 0 for None, NaN, infinities and unparsable input.
    """
    num = _as_float(value)
    if num is None:
        return 0
    return round_half_up(num * MINOR_PER_MAJOR)


def to_display(minor: object) -> float:
    """Inverse of to_minor_units: 10050 -> 100.5."""
    num = _as_float(minor)
    if num is None:
        return 0.0
    return num / MINOR_PER_MAJOR


def format_money(minor: object, locale: str = "tr") -> str:
    """Format minor units for display: 123450 -> '1.234,5' (tr) or '1,234.5' (en).

    Up to two fraction digits, trailing zeros dropped.
    """
    thousands, decimal = _LOCALE_SEPARATORS.get(locale, _LOCALE_SEPARATORS["tr"])
    num = _as_float(minor)
    if num is None:
        num = 0.0
    cents = int(round(num))
    sign = "-" if cents < 0 else ""
    whole, frac = divmod(abs(cents), MINOR_PER_MAJOR)
    whole_str = f"{whole:,}".replace(",", thousands)
    if frac == 0:
        return f"{sign}{whole_str}"
    frac_str = f"{frac:02d}".rstrip("0")
    return f"{sign}{whole_str}{decimal}{frac_str}"


def split_installments(total: int, count: int) -> list[int]:
    """Split an integer amount into `count` parts; the remainder goes to the first."""
    if count < 1:
        raise ValueError(f"Installment count must be >= 1, got {count}")
    base, remainder = divmod(total, count)
    return [base + (remainder if i == 0 else 0) for i in range(count)]
