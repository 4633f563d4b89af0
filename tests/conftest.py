"""
Test fixtures for the EMI calculator.

The factories here build loan terms with sensible defaults so each test only
spells out the fields it is actually about.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from emi_calc.data_models import CompoundingFrequency, DisbursementPhase, LoanInput


@pytest.fixture
def make_loan():
    """Factory for ``LoanInput``: 100 000 at 12% over 12 months, monthly compounding."""

    def _make(**overrides) -> LoanInput:
        fields = dict(
            principal=Decimal("100000"),
            annual_rate=Decimal("12"),
            tenure_months=12,
            start_date=date(2024, 1, 5),
            compounding=CompoundingFrequency.MONTHLY,
        )
        fields.update(overrides)
        return LoanInput(**fields)

    return _make


@pytest.fixture
def home_loan_phases():
    """Three tranches of 1M, two months apart; full disbursement on 2024-06-10."""
    return (
        DisbursementPhase(date(2024, 1, 10), Decimal("1000000"), "Foundation"),
        DisbursementPhase(date(2024, 3, 10), Decimal("1000000"), "Structure"),
        DisbursementPhase(date(2024, 5, 10), Decimal("1000000"), "Finishing"),
    )


@pytest.fixture
def home_loan(make_loan, home_loan_phases):
    return make_loan(
        principal=Decimal("3000000"),
        annual_rate=Decimal("9"),
        tenure_months=240,
        start_date=date(2024, 6, 10),
        disbursement_phases=home_loan_phases,
    )
