"""Phased disbursement (home loan) schedules.

A home loan is released in tranches while construction progresses. Until the
last tranche is out the borrower pays interest only (pre-EMI) on what has
been disbursed so far; regular EMIs start one month after the final tranche,
the full disbursement date. The regular part is produced by the plain
simulator in ``emi_calc.engine`` and appended after the pre-EMI rows so the
combined schedule has one continuous month index.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import List, Sequence, Tuple

from .data_models import (
    CompoundingFrequency,
    DisbursementEntry,
    DisbursementPhase,
    LoanConfigurationError,
    LoanInput,
    LoanOutput,
    MonthlyPayment,
    PaymentType,
    PreEmiPayment,
)
from .engine import accrue_interest, compute_loan
from .utils import MAX_PERIODS, add_months, days_in_month, period_counter

logger = logging.getLogger(__name__)

DISBURSEMENT_TOLERANCE = Decimal("0.01")
MIN_DISBURSED_BALANCE = Decimal("0.01")


@dataclass(frozen=True)
class DisbursementValidation:
    """Outcome of checking disbursement phases against the loan terms."""

    errors: Tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def __bool__(self) -> bool:
        return self.is_valid


def validate_disbursement(loan: LoanInput) -> DisbursementValidation:
    """Check that the phases exist, add up to the principal and are chronological.

    Problems are logged and returned; the simulator will still run on an
    invalid loan, so callers decide whether a failure blocks them.
    """
    errors: List[str] = []
    phases = loan.disbursement_phases
    if not phases:
        errors.append("Loan has no disbursement phases")
    else:
        total = sum((phase.amount for phase in phases), Decimal("0"))
        if abs(total - loan.principal) > DISBURSEMENT_TOLERANCE:
            errors.append(
                f"Total disbursement amount ({total}) does not match principal ({loan.principal})"
            )
        if any(phase.amount <= 0 for phase in phases):
            errors.append("Disbursement amounts must be positive")
        previous = None
        for phase in phases:
            if previous is not None and phase.disbursement_date < previous:
                errors.append("Disbursement dates must be in chronological order")
                break
            previous = phase.disbursement_date

    for error in errors:
        logger.warning("Disbursement validation failed: %s", error)
    return DisbursementValidation(errors=tuple(errors))


def _sorted_phases(loan: LoanInput) -> List[DisbursementPhase]:
    return sorted(loan.disbursement_phases, key=lambda phase: phase.disbursement_date)


def full_disbursement_date(loan: LoanInput) -> date:
    """Return the date regular EMIs start: one month after the last tranche."""
    if not loan.disbursement_phases:
        return loan.start_date
    last = max(phase.disbursement_date for phase in loan.disbursement_phases)
    return add_months(last, 1)


def calculate_pre_emi_interest(
    disbursed_balance: Decimal,
    annual_rate: Decimal,
    payment_date: date,
    compounding: CompoundingFrequency,
) -> Decimal:
    """Interest-only amount due for the month of ``payment_date``."""
    interest, _ = accrue_interest(disbursed_balance, annual_rate, payment_date, compounding)
    return interest


def build_disbursement_ledger(phases: Sequence[DisbursementPhase]) -> List[DisbursementEntry]:
    ledger: List[DisbursementEntry] = []
    cumulative = Decimal("0")
    for phase in phases:
        cumulative += phase.amount
        ledger.append(
            DisbursementEntry(
                disbursement_date=phase.disbursement_date,
                amount=phase.amount,
                cumulative_disbursed=cumulative,
                description=phase.description,
            )
        )
    return ledger


def generate_pre_emi(loan: LoanInput) -> Tuple[List[MonthlyPayment], List[PreEmiPayment]]:
    """Generate the interest-only rows that run while tranches are released.

    Each phase contributes one row per month from its own date until the next
    phase date; the last phase runs until the full disbursement date. The
    rows share one period ceiling of ``MAX_PERIODS``.
    """
    phases = _sorted_phases(loan)
    end_date = full_disbursement_date(loan)
    rows: List[MonthlyPayment] = []
    pre_emi: List[PreEmiPayment] = []
    counter = period_counter(MAX_PERIODS)
    disbursed = Decimal("0")

    for index, phase in enumerate(phases):
        disbursed += phase.amount
        next_date = phases[index + 1].disbursement_date if index + 1 < len(phases) else end_date
        step = 0
        payment_date = phase.disbursement_date
        while payment_date < next_date and disbursed > MIN_DISBURSED_BALANCE:
            month = next(counter, None)
            if month is None:
                logger.warning("Pre-EMI generation stopped at the %d period ceiling", MAX_PERIODS)
                return rows, pre_emi
            interest = calculate_pre_emi_interest(disbursed, loan.annual_rate, payment_date, loan.compounding)
            pre_emi.append(
                PreEmiPayment(
                    payment_date=payment_date,
                    interest_amount=interest,
                    disbursed_balance=disbursed,
                    current_rate=loan.annual_rate,
                    days_in_period=days_in_month(payment_date),
                )
            )
            rows.append(
                MonthlyPayment(
                    month_number=month,
                    emi=interest,
                    principal_paid=Decimal("0"),
                    interest_paid=interest,
                    remaining_balance=disbursed,
                    current_rate=loan.annual_rate,
                    payment_date=payment_date,
                    payment_type=PaymentType.PRE_EMI,
                )
            )
            step += 1
            payment_date = add_months(phase.disbursement_date, step)
    return rows, pre_emi


def compute_home_loan(loan: LoanInput, strict: bool = False) -> LoanOutput:
    """Compute a phased-disbursement schedule: pre-EMI rows, then regular EMIs.

    Loans without phases are computed by ``compute_loan``. With
    ``strict=True`` a failed ``validate_disbursement`` raises
    ``LoanConfigurationError``; otherwise the schedule is produced regardless.
    """
    if not loan.has_phased_disbursement:
        return compute_loan(loan)

    if strict:
        validation = validate_disbursement(loan)
        if not validation:
            raise LoanConfigurationError("; ".join(validation.errors))

    phases = _sorted_phases(loan)
    ledger = build_disbursement_ledger(phases)
    pre_emi_rows, pre_emi = generate_pre_emi(loan)

    start = full_disbursement_date(loan)
    regular_terms = replace(loan, start_date=start, disbursement_phases=(), loan_issue_date=None)
    regular = compute_loan(regular_terms)

    offset = len(pre_emi_rows)
    regular_rows = [replace(row, month_number=row.month_number + offset) for row in regular.payments]

    logger.info(
        "Computed home loan: %d tranches, %d pre-EMI months, regular EMI %.2f from %s",
        len(phases),
        offset,
        regular.initial_emi,
        start.isoformat(),
    )
    return LoanOutput(
        initial_emi=regular.initial_emi,
        payments=tuple(pre_emi_rows + regular_rows),
        disbursements=tuple(ledger),
        pre_emi_payments=tuple(pre_emi),
        broken_period_interest=regular.broken_period_interest,
    )
