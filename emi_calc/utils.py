"""Utility functions for the EMI calculator.

This module provides helpers for parsing user input into Python data types,
for calendar arithmetic (adding months, month lengths, leap-year aware year
lengths) and the bounded period counter every schedule loop runs on.
"""

from __future__ import annotations

import calendar
from datetime import date
from decimal import Decimal, getcontext
from typing import Iterator

getcontext().prec = 28  # increase decimal precision to avoid rounding errors

# Loans are not expected to run longer than 100 years.
MAX_PERIODS = 1200


def period_counter(limit: int = MAX_PERIODS, start: int = 1) -> Iterator[int]:
    """Yield period numbers ``start, start + 1, ...`` at most ``limit`` times.

    Every month-by-month loop in the engine iterates over this counter, so the
    safety ceiling is explicit at the call site. Exhausting the counter is not
    an error; the loop simply ends with whatever it has built so far.
    """
    if limit < 0:
        raise ValueError("limit cannot be negative")
    for offset in range(limit):
        yield start + offset


def parse_date(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` string (or ``YYYY-MM``, meaning the 1st).

    Raises
    ------
    ValueError
        If the string is not a valid date.
    """
    try:
        parts = value.strip().split("-")
        if len(parts) not in (2, 3):
            raise ValueError
        year = int(parts[0])
        month = int(parts[1])
        day = int(parts[2]) if len(parts) == 3 else 1
        return date(year, month, day)
    except ValueError as exc:
        raise ValueError(f"Invalid date string: {value}") from exc


def add_months(dt: date, months: int) -> date:
    """Return a new date a number of months after ``dt``.

    The day of the month is clamped to the last valid day if needed (e.g.,
    adding one month to Jan 31 yields Feb 28 or 29).
    """
    year = dt.year + (dt.month - 1 + months) // 12
    month = (dt.month - 1 + months) % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def first_of_next_month(dt: date) -> date:
    return add_months(dt.replace(day=1), 1)


def days_in_month(dt: date) -> int:
    return calendar.monthrange(dt.year, dt.month)[1]


def year_length(dt: date) -> int:
    return 366 if calendar.isleap(dt.year) else 365


def decimal_from_str(value: str) -> Decimal:
    """Convert a numeric string into a ``Decimal``.

    The function strips any commas and handles both integer and float-like
    strings. It raises ``ValueError`` if conversion fails.
    """
    try:
        cleaned = str(value).replace(",", "").strip()
        result = Decimal(cleaned)
    except ArithmeticError as exc:
        raise ValueError(f"Invalid numeric value: {value}") from exc
    if not result.is_finite():
        raise ValueError(f"Invalid numeric value: {value}")
    return result


def parse_amount(value: str) -> Decimal:
    """Parse an amount with optional ``k``/``m`` suffixes ("500k" is 500 000)."""
    text = str(value).strip().lower().replace(",", "")
    factor = Decimal("1")
    if text.endswith("k"):
        factor = Decimal("1000")
        text = text[:-1]
    elif text.endswith("m"):
        factor = Decimal("1000000")
        text = text[:-1]
    return decimal_from_str(text) * factor
