"""
Tests for the fee-amortization APR.
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal

import pytest

from emi_calc.apr import calculate_apr, total_fees
from emi_calc.data_models import LoanCharge
from emi_calc.engine import compute_loan


@pytest.fixture
def interest_free(make_loan):
    loan = make_loan(principal=Decimal("12000"), annual_rate=Decimal("0"))
    return loan, compute_loan(loan)


class TestTotalFees:
    def test_one_time_and_recurring(self):
        charges = [
            LoanCharge("processing", Decimal("120")),
            LoanCharge("insurance", Decimal("10"), is_recurring=True),
        ]
        assert total_fees(charges, 12) == Decimal("240")

    def test_no_charges(self):
        assert total_fees(None, 12) == 0


class TestCalculateApr:
    def test_without_fees_is_interest_spread_plus_rate(self, make_loan):
        loan = make_loan()
        output = compute_loan(loan)
        expected = output.total_interest_paid / loan.principal / 12 * 100 + loan.annual_rate

        assert calculate_apr(loan, output) == expected.quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)

    def test_one_time_fee(self, interest_free):
        loan, output = interest_free
        apr = calculate_apr(loan, output, [LoanCharge("processing", Decimal("120"))])
        assert apr == Decimal("0.0833")

    def test_recurring_fee_counts_every_month(self, interest_free):
        loan, output = interest_free
        apr = calculate_apr(loan, output, [LoanCharge("insurance", Decimal("10"), is_recurring=True)])
        assert apr == Decimal("0.0833")

    def test_rounds_half_up(self, interest_free):
        loan, output = interest_free
        charges = [
            LoanCharge("processing", Decimal("120")),
            LoanCharge("insurance", Decimal("10"), is_recurring=True),
        ]
        assert calculate_apr(loan, output, charges) == Decimal("0.1667")

    def test_overflow_falls_back_to_nominal_rate(self, make_loan, caplog):
        loan = make_loan(principal=Decimal("1"), annual_rate=Decimal("5"))
        output = compute_loan(loan)
        with caplog.at_level(logging.WARNING, logger="emi_calc.apr"):
            apr = calculate_apr(loan, output, [LoanCharge("processing", Decimal("10000000"))])

        assert apr == Decimal("5.0000")
        assert "overflows" in caplog.text
