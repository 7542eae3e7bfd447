"""Calendar arithmetic for leave ranges and fiscal-year boundaries.

A fiscal year is named after the calendar year it starts in. With a start
month of April, ``FY2025-2026`` runs from 2025-04-01 to 2026-03-31; with the
default January start it is simply the calendar year 2025.
"""

from __future__ import annotations

import calendar
from datetime import date, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from leave_ledger.config import get_settings
from leave_ledger.exceptions import ValidationError

if TYPE_CHECKING:
    from collections.abc import Iterator

HALF_DAY = Decimal("0.5")


def _start_month() -> int:
    return get_settings().fiscal_year_start_month


def fiscal_year_start(year: int) -> date:
    """First day of the fiscal year that starts in ``year``."""
    return date(year, _start_month(), 1)


def fiscal_year_of(day: date) -> int:
    """Start year of the fiscal year containing ``day``."""
    return day.year if day.month >= _start_month() else day.year - 1


def fiscal_year_label(year: int) -> str:
    return f"FY{year}-{year + 1}"


def label_for_date(day: date) -> str:
    return fiscal_year_label(fiscal_year_of(day))


def add_months(day: date, months: int) -> date:
    """Shift ``day`` by whole months, clamping to the end of shorter months."""
    index = day.month - 1 + months
    year = day.year + index // 12
    month = index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def validate_range(start_date: date, end_date: date) -> None:
    if end_date < start_date:
        msg = f"end_date {end_date} is before start_date {start_date}"
        raise ValidationError(msg)


def iter_days(start_date: date, end_date: date) -> Iterator[date]:
    """Yield every calendar day in ``[start_date, end_date]``."""
    validate_range(start_date, end_date)
    current = start_date
    one_day = timedelta(days=1)
    while current <= end_date:
        yield current
        current += one_day


def count_leave_days(start_date: date, end_date: date, is_half_day: bool = False) -> Decimal:
    """Inclusive calendar-day count, or 0.5 for a single half day."""
    validate_range(start_date, end_date)
    if is_half_day:
        if start_date != end_date:
            msg = "A half-day leave must start and end on the same day"
            raise ValidationError(msg)
        return HALF_DAY
    return Decimal((end_date - start_date).days + 1)
