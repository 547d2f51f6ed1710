"""Month key parsing and claim period resolution."""

from __future__ import annotations

import calendar
import re
from datetime import date

from allowance_engine.calculators.types import MonthWindow

MONTH_KEY_PATTERN = re.compile(r"^\d{4}-\d{2}$")


def is_month_key(value: str) -> bool:
    """Check the ``YYYY-MM`` shape (the month itself may still be invalid)."""
    return bool(MONTH_KEY_PATTERN.match(value))


def month_key_from_date(day: date) -> str:
    """Month key containing the given day."""
    return f"{day.year:04d}-{day.month:02d}"


def parse_month_key(month_key: str, today: date) -> tuple[int, int]:
    """Parse a month key into (year, month).

    Never raises: an unparsable year or a month outside 1..12 falls back to
    the corresponding part of ``today``.
    """
    parts = (month_key or "").split("-")
    try:
        year = int(parts[0])
    except (ValueError, IndexError):
        year = today.year
    try:
        month = int(parts[1])
    except (ValueError, IndexError):
        month = today.month
    if not 1 <= month <= 12:
        month = today.month
    if not 1 <= year <= 9999:
        year = today.year
    return year, month


def resolve_month_window(
    month_key: str,
    today: date,
    period_start: date | None = None,
    period_end: date | None = None,
) -> MonthWindow:
    """Resolve the inclusive claim window for a month.

    Pay period overrides win over calendar month boundaries when present.
    """
    year, month = parse_month_key(month_key, today)
    last_day = calendar.monthrange(year, month)[1]
    start = period_start or date(year, month, 1)
    end = period_end or date(year, month, last_day)
    label = f"{calendar.month_abbr[start.month]} {start.year}"
    return MonthWindow(month_key=month_key, period_start=start, period_end=end, label=label)
