"""
Tests for dictionary conversion of loan terms and schedules.
"""

from __future__ import annotations

import json
from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from emi_calc.data_models import (
    CompoundingFrequency,
    LoanConfigurationError,
    MoratoriumPeriod,
    MoratoriumType,
)
from emi_calc.engine import compute_loan
from emi_calc.home_loan import compute_home_loan
from emi_calc.serialization import input_from_dict, input_to_dict, output_from_dict, output_to_dict


class TestLoanInput:
    def test_terms_survive_json(self, home_loan):
        loan = replace(
            home_loan,
            loan_issue_date=date(2023, 12, 20),
            moratorium_periods=(MoratoriumPeriod(1, 2, MoratoriumType.PARTIAL, Decimal("250.50")),),
        )
        restored = input_from_dict(json.loads(json.dumps(input_to_dict(loan))))
        assert restored == loan

    def test_minimal_dict_uses_defaults(self):
        loan = input_from_dict(
            {"principal": "500000", "annual_rate": "9.5", "tenure_months": 60, "start_date": "2024-02-01"}
        )

        assert loan.compounding is CompoundingFrequency.DAILY
        assert loan.moratorium_months == 0
        assert loan.disbursement_phases == ()

    def test_missing_field(self):
        with pytest.raises(LoanConfigurationError, match="principal"):
            input_from_dict({"annual_rate": "9", "tenure_months": 12, "start_date": "2024-01-01"})

    @pytest.mark.parametrize(
        "field, value",
        [("annual_rate", "lots"), ("compounding", "WEEKLY"), ("start_date", "tomorrow"), ("tenure_months", 0)],
    )
    def test_bad_values(self, field, value):
        data = {"principal": "1000", "annual_rate": "9", "tenure_months": 12, "start_date": "2024-01-01"}
        data[field] = value
        with pytest.raises(LoanConfigurationError):
            input_from_dict(data)


class TestLoanOutput:
    def test_amounts_are_strings(self, make_loan):
        data = output_to_dict(compute_loan(make_loan()))

        assert isinstance(data["initial_emi"], str)
        assert data["payments"][0]["payment_date"] == "2024-01-05"
        assert data["payments"][0]["payment_type"] == "NORMAL"
        assert data["actual_tenure"] == 12

    def test_schedule_survives_json(self, home_loan):
        output = compute_home_loan(home_loan)
        restored = output_from_dict(json.loads(json.dumps(output_to_dict(output))))

        assert restored == output
        assert restored.total_interest_paid == output.total_interest_paid

    def test_bpi_is_kept(self, make_loan):
        output = compute_loan(make_loan(loan_issue_date=date(2024, 1, 1)))
        restored = output_from_dict(output_to_dict(output))

        assert restored.broken_period_interest == output.broken_period_interest
