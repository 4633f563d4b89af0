"""Conversion of loan terms and schedules to and from plain dictionaries.

Amounts are written as strings so no precision is lost in JSON; dates use
ISO format. The same layout is used by the CLI exports, the web API and the
snapshot store.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional

from .data_models import (
    BrokenPeriodInterest,
    CompoundingFrequency,
    DisbursementEntry,
    DisbursementPhase,
    FloatingStrategy,
    LoanConfigurationError,
    LoanInput,
    LoanOutput,
    MonthlyPayment,
    MoratoriumPeriod,
    MoratoriumType,
    PaymentType,
    PreEmiPayment,
)
from .utils import decimal_from_str, parse_date


def _dec(value: Any) -> Decimal:
    return decimal_from_str(str(value))


def _date(value: Optional[str]) -> Optional[date]:
    return parse_date(value) if value else None


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def input_to_dict(loan: LoanInput) -> Dict[str, Any]:
    return {
        "principal": str(loan.principal),
        "annual_rate": str(loan.annual_rate),
        "tenure_months": loan.tenure_months,
        "start_date": loan.start_date.isoformat(),
        "loan_issue_date": _iso(loan.loan_issue_date),
        "compounding": loan.compounding.value,
        "floating_strategy": loan.floating_strategy.value,
        "moratorium_months": loan.moratorium_months,
        "moratorium_type": loan.moratorium_type.value,
        "partial_payment_emi": str(loan.partial_payment_emi),
        "moratorium_periods": [
            {
                "start_month": p.start_month,
                "end_month": p.end_month,
                "type": p.type.value,
                "partial_payment_emi": str(p.partial_payment_emi),
            }
            for p in loan.moratorium_periods
        ],
        "disbursement_phases": [
            {
                "disbursement_date": p.disbursement_date.isoformat(),
                "amount": str(p.amount),
                "description": p.description,
            }
            for p in loan.disbursement_phases
        ],
        "fixed_emi": str(loan.fixed_emi) if loan.fixed_emi is not None else None,
    }


def input_from_dict(data: Dict[str, Any]) -> LoanInput:
    """Build a ``LoanInput`` from a dictionary as produced by ``input_to_dict``.

    Only ``principal``, ``annual_rate``, ``tenure_months`` and ``start_date``
    are required. Any malformed value raises ``LoanConfigurationError``.
    """
    try:
        return LoanInput(
            principal=_dec(data["principal"]),
            annual_rate=_dec(data["annual_rate"]),
            tenure_months=int(data["tenure_months"]),
            start_date=parse_date(data["start_date"]),
            loan_issue_date=_date(data.get("loan_issue_date")),
            compounding=CompoundingFrequency(data.get("compounding", "DAILY")),
            floating_strategy=FloatingStrategy(data.get("floating_strategy", "EMI_CONSTANT")),
            moratorium_months=int(data.get("moratorium_months", 0)),
            moratorium_type=MoratoriumType(data.get("moratorium_type", "FULL")),
            partial_payment_emi=_dec(data.get("partial_payment_emi", "0")),
            moratorium_periods=[
                MoratoriumPeriod(
                    start_month=int(p["start_month"]),
                    end_month=int(p["end_month"]),
                    type=MoratoriumType(p.get("type", "FULL")),
                    partial_payment_emi=_dec(p.get("partial_payment_emi", "0")),
                )
                for p in data.get("moratorium_periods") or ()
            ],
            disbursement_phases=[
                DisbursementPhase(
                    disbursement_date=parse_date(p["disbursement_date"]),
                    amount=_dec(p["amount"]),
                    description=p.get("description", ""),
                )
                for p in data.get("disbursement_phases") or ()
            ],
            fixed_emi=_dec(data["fixed_emi"]) if data.get("fixed_emi") is not None else None,
        )
    except LoanConfigurationError:
        raise
    except KeyError as exc:
        raise LoanConfigurationError(f"Missing loan field: {exc.args[0]}") from exc
    except (TypeError, ValueError) as exc:
        raise LoanConfigurationError(f"Invalid loan terms: {exc}") from exc


def payment_to_dict(row: MonthlyPayment) -> Dict[str, Any]:
    return {
        "month_number": row.month_number,
        "payment_date": row.payment_date.isoformat(),
        "emi": str(row.emi),
        "principal_paid": str(row.principal_paid),
        "interest_paid": str(row.interest_paid),
        "remaining_balance": str(row.remaining_balance),
        "current_rate": str(row.current_rate),
        "payment_type": row.payment_type.value,
    }


def payment_from_dict(data: Dict[str, Any]) -> MonthlyPayment:
    return MonthlyPayment(
        month_number=int(data["month_number"]),
        emi=_dec(data["emi"]),
        principal_paid=_dec(data["principal_paid"]),
        interest_paid=_dec(data["interest_paid"]),
        remaining_balance=_dec(data["remaining_balance"]),
        current_rate=_dec(data["current_rate"]),
        payment_date=parse_date(data["payment_date"]),
        payment_type=PaymentType(data["payment_type"]),
    )


def output_to_dict(output: LoanOutput) -> Dict[str, Any]:
    bpi = output.broken_period_interest
    return {
        "initial_emi": str(output.initial_emi),
        "total_interest_paid": str(output.total_interest_paid),
        "total_amount_paid": str(output.total_amount_paid),
        "actual_tenure": output.actual_tenure,
        "payments": [payment_to_dict(row) for row in output.payments],
        "disbursements": [
            {
                "disbursement_date": d.disbursement_date.isoformat(),
                "amount": str(d.amount),
                "cumulative_disbursed": str(d.cumulative_disbursed),
                "description": d.description,
            }
            for d in output.disbursements
        ],
        "pre_emi_payments": [
            {
                "payment_date": p.payment_date.isoformat(),
                "interest_amount": str(p.interest_amount),
                "disbursed_balance": str(p.disbursed_balance),
                "current_rate": str(p.current_rate),
                "days_in_period": p.days_in_period,
            }
            for p in output.pre_emi_payments
        ],
        "broken_period_interest": None
        if bpi is None
        else {
            "issue_date": bpi.issue_date.isoformat(),
            "first_emi_date": bpi.first_emi_date.isoformat(),
            "day_count": bpi.day_count,
            "interest_amount": str(bpi.interest_amount),
            "added_to_first_emi": bpi.added_to_first_emi,
            "description": bpi.description,
        },
    }


def output_from_dict(data: Dict[str, Any]) -> LoanOutput:
    """Rebuild a ``LoanOutput``; derived totals in ``data`` are ignored."""
    bpi = data.get("broken_period_interest")
    return LoanOutput(
        initial_emi=_dec(data["initial_emi"]),
        payments=[payment_from_dict(row) for row in data.get("payments", ())],
        disbursements=[
            DisbursementEntry(
                disbursement_date=parse_date(d["disbursement_date"]),
                amount=_dec(d["amount"]),
                cumulative_disbursed=_dec(d["cumulative_disbursed"]),
                description=d.get("description", ""),
            )
            for d in data.get("disbursements", ())
        ],
        pre_emi_payments=[
            PreEmiPayment(
                payment_date=parse_date(p["payment_date"]),
                interest_amount=_dec(p["interest_amount"]),
                disbursed_balance=_dec(p["disbursed_balance"]),
                current_rate=_dec(p["current_rate"]),
                days_in_period=int(p["days_in_period"]),
            )
            for p in data.get("pre_emi_payments", ())
        ],
        broken_period_interest=None
        if not bpi
        else BrokenPeriodInterest(
            issue_date=parse_date(bpi["issue_date"]),
            first_emi_date=parse_date(bpi["first_emi_date"]),
            day_count=int(bpi["day_count"]),
            interest_amount=_dec(bpi["interest_amount"]),
            added_to_first_emi=bool(bpi["added_to_first_emi"]),
            description=bpi.get("description", ""),
        ),
    )
