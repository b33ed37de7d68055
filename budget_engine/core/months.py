import re
from datetime import date
from typing import Tuple

from .errors import BudgetValidationError


_MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def normalize_month(value, field: str = "month") -> str:
    """Return the canonical ``YYYY-MM`` key for ``value``.

    Longer date strings (``2024-03-15``) are truncated to their first seven
    characters. Anything that is not a valid month after truncation is a
    validation error, never silently corrected.
    """
    if not isinstance(value, str) or not value.strip():
        raise BudgetValidationError("Month is required (YYYY-MM)", field=field)
    key = value.strip()[:7]
    if not _MONTH_RE.match(key):
        raise BudgetValidationError("Invalid month, use YYYY-MM", field=field)
    return key


def parse_month(key: str) -> Tuple[int, int]:
    key = normalize_month(key)
    year, month = key.split("-")
    return int(year), int(month)


def format_month(year: int, month: int) -> str:
    # Keys are always zero padded so they also sort correctly as strings.
    return f"{year:04d}-{month:02d}"


def shift_month(key: str, offset: int) -> str:
    year, month = parse_month(key)
    index = year * 12 + (month - 1) + offset
    return format_month(index // 12, index % 12 + 1)


def previous_month(key: str) -> str:
    return shift_month(key, -1)


def next_month(key: str) -> str:
    return shift_month(key, 1)


def months_between(start: str, end: str) -> int:
    """Whole months from ``start`` to ``end`` (negative when end is earlier)."""
    start_year, start_month = parse_month(start)
    end_year, end_month = parse_month(end)
    return (end_year - start_year) * 12 + (end_month - start_month)


def compare_months(a: str, b: str) -> int:
    pa, pb = parse_month(a), parse_month(b)
    return (pa > pb) - (pa < pb)


def month_bounds(key: str) -> Tuple[date, date]:
    """First day of the month and first day of the following month."""
    year, month = parse_month(key)
    following_year, following_month = parse_month(next_month(key))
    return date(year, month, 1), date(following_year, following_month, 1)


def month_of(day: date) -> str:
    return format_month(day.year, day.month)


def current_month() -> str:
    return month_of(date.today())
