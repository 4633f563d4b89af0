"""
Tests for broken period interest between loan issue and the first EMI.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from emi_calc.data_models import PaymentType
from emi_calc.engine import calculate_bpi, compute_loan


class TestCalculateBpi:
    def test_short_gap_is_added_to_first_emi(self, make_loan):
        loan = make_loan(annual_rate=Decimal("10"), loan_issue_date=date(2024, 1, 1), start_date=date(2024, 1, 10))
        bpi = calculate_bpi(loan)

        assert bpi.day_count == 9
        assert bpi.added_to_first_emi is True
        assert float(bpi.interest_amount) == pytest.approx(246.5753, abs=1e-3)
        assert bpi.description == "BPI for 9 days from 2024-01-01 to 2024-01-10. Added to first EMI"

    def test_long_gap_is_charged_separately(self, make_loan):
        loan = make_loan(loan_issue_date=date(2024, 1, 1), start_date=date(2024, 1, 21))
        bpi = calculate_bpi(loan)

        assert bpi.day_count == 20
        assert bpi.added_to_first_emi is False
        assert "Charged separately" in bpi.description

    @pytest.mark.parametrize("days, added", [(14, True), (15, False)])
    def test_fold_threshold(self, make_loan, days, added):
        loan = make_loan(loan_issue_date=date(2024, 1, 1), start_date=date(2024, 1, 1 + days))
        assert calculate_bpi(loan).added_to_first_emi is added

    @pytest.mark.parametrize("issue", [None, date(2024, 1, 5), date(2024, 2, 1)])
    def test_no_positive_gap_means_no_bpi(self, make_loan, issue):
        assert calculate_bpi(make_loan(loan_issue_date=issue)) is None


class TestBpiInSchedule:
    def test_folded_into_first_row(self, make_loan):
        loan = make_loan(loan_issue_date=date(2024, 1, 1), start_date=date(2024, 1, 10))
        output = compute_loan(loan)
        bpi = output.broken_period_interest
        first = output.payments[0]

        assert first.payment_type is PaymentType.NORMAL_WITH_BPI
        assert first.emi == output.initial_emi + bpi.interest_amount
        assert output.payments[1].payment_type is PaymentType.NORMAL

    def test_folded_bpi_counts_as_interest(self, make_loan):
        plain = compute_loan(make_loan(start_date=date(2024, 1, 10)))
        with_bpi = compute_loan(make_loan(loan_issue_date=date(2024, 1, 1), start_date=date(2024, 1, 10)))
        extra = with_bpi.broken_period_interest.interest_amount

        assert float(with_bpi.total_interest_paid) == pytest.approx(
            float(plain.total_interest_paid + extra), abs=1e-6
        )

    def test_separate_bpi_leaves_schedule_alone(self, make_loan):
        output = compute_loan(make_loan(loan_issue_date=date(2023, 12, 1), start_date=date(2024, 1, 10)))

        assert output.broken_period_interest is not None
        assert output.payments[0].payment_type is PaymentType.NORMAL
        assert output.payments[0].emi == output.initial_emi
