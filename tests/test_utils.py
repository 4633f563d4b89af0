"""
Tests for parsing and calendar helpers.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from emi_calc.utils import (
    add_months,
    days_in_month,
    decimal_from_str,
    first_of_next_month,
    parse_amount,
    parse_date,
    period_counter,
    year_length,
)


class TestPeriodCounter:
    def test_counts_from_one(self):
        assert list(period_counter(3)) == [1, 2, 3]

    def test_custom_start(self):
        assert list(period_counter(2, start=5)) == [5, 6]

    def test_zero_limit_is_empty(self):
        assert list(period_counter(0)) == []

    def test_negative_limit_rejected(self):
        with pytest.raises(ValueError):
            list(period_counter(-1))


class TestDates:
    @pytest.mark.parametrize(
        "text, expected",
        [("2024-03-15", date(2024, 3, 15)), ("2024-02", date(2024, 2, 1)), (" 2025-12-31 ", date(2025, 12, 31))],
    )
    def test_parse_date(self, text, expected):
        assert parse_date(text) == expected

    @pytest.mark.parametrize("text", ["2024", "2024-13-01", "2024-02-30", "soon"])
    def test_parse_date_invalid(self, text):
        with pytest.raises(ValueError, match="Invalid date string"):
            parse_date(text)

    def test_add_months_clamps_day(self):
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)

    def test_add_months_crosses_year(self):
        assert add_months(date(2024, 11, 5), 3) == date(2025, 2, 5)

    def test_first_of_next_month(self):
        assert first_of_next_month(date(2024, 12, 20)) == date(2025, 1, 1)

    def test_month_and_year_lengths(self):
        assert days_in_month(date(2024, 2, 10)) == 29
        assert days_in_month(date(2023, 2, 10)) == 28
        assert year_length(date(2024, 6, 1)) == 366
        assert year_length(date(2023, 6, 1)) == 365


class TestAmounts:
    def test_decimal_from_str_strips_commas(self):
        assert decimal_from_str("1,000.50") == Decimal("1000.50")

    @pytest.mark.parametrize("text", ["abc", "nan", "inf", ""])
    def test_decimal_from_str_invalid(self, text):
        with pytest.raises(ValueError):
            decimal_from_str(text)

    @pytest.mark.parametrize(
        "text, expected",
        [("500k", Decimal("500000")), ("1.5m", Decimal("1500000")), ("2,500", Decimal("2500")), ("75K", Decimal("75000"))],
    )
    def test_parse_amount(self, text, expected):
        assert parse_amount(text) == expected
