"""Core calculation engine for the EMI calculator.

This module implements the amortization simulator that turns ``LoanInput``
terms into a month-by-month repayment schedule. Two interest regimes are
supported: monthly compounding, where the EMI has the usual closed-form
annuity value, and daily compounding, where interest accrues day by day
within each calendar month and the EMI is found by a bisection goal-seek.
Moratorium windows (full, interest-only, partial), floating-rate tenure
extension and broken period interest are applied on top of either regime.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from decimal import Decimal, getcontext
from typing import Callable, Dict, Iterable, List, NamedTuple, Optional, Tuple

from .apr import calculate_apr
from .data_models import (
    BrokenPeriodInterest,
    CompoundingFrequency,
    FloatingStrategy,
    LoanCharge,
    LoanInput,
    LoanOutput,
    MonthlyPayment,
    MoratoriumType,
    PaymentType,
)
from .utils import MAX_PERIODS, add_months, days_in_month, period_counter, year_length

getcontext().prec = 28  # increase precision for financial calculations

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
# Balances below one unit are floating-point dust and count as settled.
DUST = Decimal("1")
EXTENSION_TOLERANCE = Decimal("0.01")
GOAL_SEEK_TOLERANCE = Decimal("0.01")
GOAL_SEEK_LOW_FACTOR = Decimal("0.8")
GOAL_SEEK_HIGH_FACTOR = Decimal("1.2")
MAX_GOAL_SEEK_ITERATIONS = 200
BPI_FOLD_THRESHOLD_DAYS = 15


def calculate_annuity_emi(principal: Decimal, annual_rate: Decimal, months: int) -> Decimal:
    """Return the annuity (equal installment) monthly payment for a loan.

    The formula is:

        emi = P * (r * (1 + r)^n) / ((1 + r)^n - 1)

    where ``P`` is the principal, ``r`` is ``annual_rate / 12 / 100`` and
    ``n`` is the number of payments. When the interest rate is zero, the
    payment simplifies to ``P / n``.
    """
    if months <= 0:
        raise ValueError("Term must be positive")
    rate_per_month = annual_rate / Decimal(100) / Decimal(12)
    if rate_per_month == 0:
        return principal / Decimal(months)
    factor = (1 + rate_per_month) ** months
    return principal * (rate_per_month * factor) / (factor - 1)


# -- interest accrual -------------------------------------------------------


def _accrue_monthly(balance: Decimal, annual_rate: Decimal, payment_date: date) -> Tuple[Decimal, Decimal]:
    interest = balance * annual_rate / Decimal(1200)
    return interest, balance + interest


def _accrue_daily(balance: Decimal, annual_rate: Decimal, payment_date: date) -> Tuple[Decimal, Decimal]:
    daily_rate = annual_rate / Decimal(year_length(payment_date)) / Decimal(100)
    interest = ZERO
    for _ in range(days_in_month(payment_date)):
        daily_interest = balance * daily_rate
        interest += daily_interest
        balance += daily_interest
    return interest, balance


_ACCRUERS: Dict[CompoundingFrequency, Callable[[Decimal, Decimal, date], Tuple[Decimal, Decimal]]] = {
    CompoundingFrequency.MONTHLY: _accrue_monthly,
    CompoundingFrequency.DAILY: _accrue_daily,
}


def accrue_interest(
    balance: Decimal,
    annual_rate: Decimal,
    payment_date: date,
    compounding: CompoundingFrequency,
) -> Tuple[Decimal, Decimal]:
    """Accrue one month of interest on ``balance``.

    Returns ``(interest, balance_with_interest)``. Daily compounding walks the
    days of ``payment_date``'s calendar month using a 365 or 366 day year.
    """
    return _ACCRUERS[compounding](balance, annual_rate, payment_date)


# -- settlement of one period -----------------------------------------------


class _Settlement(NamedTuple):
    emi: Decimal
    principal_paid: Decimal
    interest_paid: Decimal
    balance: Decimal
    payment_type: PaymentType


def _settle_full(accrued: Decimal, interest: Decimal, partial_emi: Decimal) -> _Settlement:
    # nothing is collected, the interest is capitalized
    return _Settlement(ZERO, ZERO, ZERO, accrued, PaymentType.MORATORIUM_FULL)


def _settle_interest_only(accrued: Decimal, interest: Decimal, partial_emi: Decimal) -> _Settlement:
    return _Settlement(interest, ZERO, interest, accrued - interest, PaymentType.MORATORIUM_INTEREST)


def _settle_partial(accrued: Decimal, interest: Decimal, partial_emi: Decimal) -> _Settlement:
    # collection is capped at what is owed
    collected = min(partial_emi, accrued)
    return _Settlement(
        collected,
        max(ZERO, collected - interest),
        interest,
        accrued - collected,
        PaymentType.MORATORIUM_PARTIAL,
    )


def _settle_normal(accrued: Decimal, interest: Decimal, emi: Decimal) -> _Settlement:
    return _Settlement(emi, emi - interest, interest, accrued - emi, PaymentType.NORMAL)


_MORATORIUM_SETTLERS: Dict[MoratoriumType, Callable[[Decimal, Decimal, Decimal], _Settlement]] = {
    MoratoriumType.FULL: _settle_full,
    MoratoriumType.INTEREST_ONLY: _settle_interest_only,
    MoratoriumType.PARTIAL: _settle_partial,
}


def _settle(loan: LoanInput, month: int, accrued: Decimal, interest: Decimal, emi: Decimal) -> _Settlement:
    moratorium = loan.moratorium_for(month)
    if moratorium is None:
        return _settle_normal(accrued, interest, emi)
    moratorium_type, partial_emi = moratorium
    return _MORATORIUM_SETTLERS[moratorium_type](accrued, interest, partial_emi)


def _close_out(settlement: _Settlement) -> _Settlement:
    """Snap a closing balance below one unit to exactly zero.

    The installment itself is never trimmed: the last row collects the full
    EMI and reports ``principal_paid = emi - interest`` even when that
    overshoots the outstanding balance.
    """
    if settlement.balance < DUST:
        return settlement._replace(balance=ZERO)
    return settlement


def _absorb_residual(settlement: _Settlement) -> _Settlement:
    emi = settlement.emi + settlement.balance
    return settlement._replace(emi=emi, principal_paid=emi - settlement.interest_paid, balance=ZERO)


# What happens once the nominal tenure is exhausted with balance remaining,
# keyed on every (compounding, strategy) combination.
_TAIL_RULES: Dict[Tuple[CompoundingFrequency, FloatingStrategy], Callable[[Decimal], bool]] = {
    (CompoundingFrequency.MONTHLY, FloatingStrategy.EMI_CONSTANT): lambda balance: balance >= DUST,
    (CompoundingFrequency.MONTHLY, FloatingStrategy.TENURE_CONSTANT): lambda balance: balance >= DUST,
    (CompoundingFrequency.DAILY, FloatingStrategy.EMI_CONSTANT): lambda balance: balance > EXTENSION_TOLERANCE,
    (CompoundingFrequency.DAILY, FloatingStrategy.TENURE_CONSTANT): lambda balance: False,
}


def simulate_schedule(loan: LoanInput, emi: Decimal, max_periods: int = MAX_PERIODS) -> List[MonthlyPayment]:
    """Generate the schedule rows for ``loan`` paying ``emi`` in normal months.

    Rows run from ``loan.start_date`` until the balance is settled. Past the
    nominal tenure a monthly-compounding loan keeps paying normal installments
    (a moratorium can leave it short), a daily ``EMI_CONSTANT`` loan emits
    ``EXTENDED`` rows and a daily ``TENURE_CONSTANT`` loan has already cleared
    its residual in the last nominal installment. No more than
    ``max_periods`` rows are ever produced.
    """
    rows: List[MonthlyPayment] = []
    balance = loan.principal
    payment_date = loan.start_date
    keep_extending = _TAIL_RULES[(loan.compounding, loan.floating_strategy)]
    balloon_at_tenure = (
        loan.compounding is CompoundingFrequency.DAILY
        and loan.floating_strategy is FloatingStrategy.TENURE_CONSTANT
    )

    for month in period_counter(max_periods):
        past_tenure = month > loan.tenure_months
        if past_tenure:
            if not keep_extending(balance):
                break
        elif balance < DUST:
            break

        interest, accrued = accrue_interest(balance, loan.annual_rate, payment_date, loan.compounding)
        if past_tenure and loan.compounding is CompoundingFrequency.DAILY:
            settlement = _settle_normal(accrued, interest, emi)._replace(payment_type=PaymentType.EXTENDED)
        else:
            settlement = _settle(loan, month, accrued, interest, emi)

        if settlement.payment_type in (PaymentType.NORMAL, PaymentType.EXTENDED):
            if balloon_at_tenure and month == loan.tenure_months and settlement.balance > 0:
                settlement = _absorb_residual(settlement)
            settlement = _close_out(settlement)

        rows.append(
            MonthlyPayment(
                month_number=month,
                emi=settlement.emi,
                principal_paid=settlement.principal_paid,
                interest_paid=settlement.interest_paid,
                remaining_balance=settlement.balance,
                current_rate=loan.annual_rate,
                payment_date=payment_date,
                payment_type=settlement.payment_type,
            )
        )
        balance = settlement.balance
        # step from the start date so month-end dates do not drift
        payment_date = add_months(loan.start_date, month)

    if len(rows) >= max_periods and balance > 0:
        logger.warning(
            "Schedule stopped at the %d period ceiling with %.2f outstanding", max_periods, balance
        )
    return rows


# -- EMI goal seek ------------------------------------------------------------


def _terminal_balance(loan: LoanInput, emi: Decimal) -> Decimal:
    """Run the nominal tenure with ``emi`` and return the signed closing balance."""
    balance = loan.principal
    for month in period_counter(min(loan.tenure_months, MAX_PERIODS)):
        payment_date = add_months(loan.start_date, month - 1)
        interest, accrued = accrue_interest(balance, loan.annual_rate, payment_date, loan.compounding)
        balance = _settle(loan, month, accrued, interest, emi).balance
    return balance


def goal_seek_emi(loan: LoanInput, tolerance: Decimal = GOAL_SEEK_TOLERANCE) -> Decimal:
    """Find the flat EMI that drains ``loan`` to zero over its tenure.

    Bisection over ``[0.8, 1.2]`` times the monthly closed-form estimate; each
    step re-simulates the whole tenure with the same accrual and moratorium
    rules as the schedule itself. The search stops when the bracket is no
    wider than ``tolerance`` or after ``MAX_GOAL_SEEK_ITERATIONS`` steps.

    The upper bound of the final bracket is returned: it is the smallest EMI
    seen to clear the balance, so a schedule built with it finishes within
    tenure. If no candidate cleared the balance the search saturates at the upper
    bound and the schedule relies on the floating strategy to finish.
    """
    estimate = calculate_annuity_emi(loan.principal, loan.annual_rate, loan.tenure_months)
    low = estimate * GOAL_SEEK_LOW_FACTOR
    high = estimate * GOAL_SEEK_HIGH_FACTOR
    cleared = False

    for _ in period_counter(MAX_GOAL_SEEK_ITERATIONS):
        if high - low <= tolerance:
            break
        mid = (low + high) / 2
        if _terminal_balance(loan, mid) > 0:
            low = mid
        else:
            high = mid
            cleared = True
    else:
        logger.warning(
            "EMI goal seek did not converge within %d iterations (bracket %.4f..%.4f)",
            MAX_GOAL_SEEK_ITERATIONS,
            low,
            high,
        )

    if not cleared and _terminal_balance(loan, high) > 0:
        logger.warning(
            "EMI goal seek saturated at %.2f; the balance is not cleared within %d months",
            high,
            loan.tenure_months,
        )
    logger.debug("Goal-seek EMI %.4f (estimate %.4f)", high, estimate)
    return high


def _closed_form_emi(loan: LoanInput) -> Decimal:
    return calculate_annuity_emi(loan.principal, loan.annual_rate, loan.tenure_months)


_EMI_SOLVERS: Dict[CompoundingFrequency, Callable[[LoanInput], Decimal]] = {
    CompoundingFrequency.MONTHLY: _closed_form_emi,
    CompoundingFrequency.DAILY: goal_seek_emi,
}


def resolve_emi(loan: LoanInput) -> Decimal:
    """Return the regime EMI for ``loan`` (or its ``fixed_emi`` when set)."""
    if loan.fixed_emi is not None:
        return loan.fixed_emi
    return _EMI_SOLVERS[loan.compounding](loan)


# -- broken period interest ---------------------------------------------------


def calculate_bpi(loan: LoanInput) -> Optional[BrokenPeriodInterest]:
    """Return broken period interest for the gap between issue and first EMI.

    Simple interest on the full principal at ``annual_rate / 365`` per day.
    Gaps shorter than 15 days are folded into the first installment; longer
    gaps are reported as a separate line item. No record is produced when a
    date is missing or the gap is not positive.
    """
    issue_date = loan.loan_issue_date
    first_emi_date = loan.start_date
    if issue_date is None or first_emi_date is None:
        return None
    day_count = (first_emi_date - issue_date).days
    if day_count <= 0:
        return None

    daily_rate = loan.annual_rate / Decimal(365) / Decimal(100)
    amount = loan.principal * daily_rate * Decimal(day_count)
    added = day_count < BPI_FOLD_THRESHOLD_DAYS
    description = "BPI for {} days from {} to {}. {}".format(
        day_count,
        issue_date.isoformat(),
        first_emi_date.isoformat(),
        "Added to first EMI" if added else "Charged separately in the issue month",
    )
    return BrokenPeriodInterest(
        issue_date=issue_date,
        first_emi_date=first_emi_date,
        day_count=day_count,
        interest_amount=amount,
        added_to_first_emi=added,
        description=description,
    )


def _fold_bpi(first_row: MonthlyPayment, bpi: BrokenPeriodInterest) -> MonthlyPayment:
    return replace(
        first_row,
        emi=first_row.emi + bpi.interest_amount,
        interest_paid=first_row.interest_paid + bpi.interest_amount,
        payment_type=PaymentType.NORMAL_WITH_BPI,
    )


def compute_loan(loan: LoanInput) -> LoanOutput:
    """Compute the repayment schedule of a loan disbursed in full at issue.

    Disbursement phases, if any, are ignored here; see
    ``emi_calc.home_loan.compute_home_loan``.
    """
    emi = resolve_emi(loan)
    rows = simulate_schedule(loan, emi)
    bpi = calculate_bpi(loan)
    if bpi is not None and bpi.added_to_first_emi and rows:
        rows[0] = _fold_bpi(rows[0], bpi)

    output = LoanOutput(initial_emi=emi, payments=tuple(rows), broken_period_interest=bpi)
    logger.info(
        "Computed %s schedule: EMI %.2f over %d rows (tenure %d)",
        loan.compounding.value.lower(),
        emi,
        output.actual_tenure,
        loan.tenure_months,
    )
    return output


def summarize(
    loan: LoanInput,
    output: LoanOutput,
    charges: Optional[Iterable[LoanCharge]] = None,
) -> Dict[str, object]:
    """Return aggregate metrics for a computed schedule.

    The values are plain floats/ints/strings so the dictionary can be printed,
    compared or dumped to JSON directly.
    """
    payments = output.payments
    original_end_date = add_months(loan.start_date, loan.tenure_months - 1)
    try:
        max_payment = max(float(p.emi) for p in payments if p.emi > 0)
    except ValueError:
        max_payment = 0.0
    bpi = output.broken_period_interest
    return {
        "principal": float(loan.principal),
        "annual_rate": float(loan.annual_rate),
        "compounding": loan.compounding.value,
        "initial_emi": float(output.initial_emi),
        "total_interest": float(output.total_interest_paid),
        "total_amount_paid": float(output.total_amount_paid),
        "apr": float(calculate_apr(loan, output, charges)),
        "tenure_months": loan.tenure_months,
        "actual_tenure": output.actual_tenure,
        "original_end_date": original_end_date.isoformat(),
        "last_payment_date": payments[-1].payment_date.isoformat() if payments else None,
        "payments_made": sum(1 for p in payments if p.emi > 0),
        "max_payment": max_payment,
        "final_balance": float(output.final_balance),
        "bpi_amount": float(bpi.interest_amount) if bpi else 0.0,
        "bpi_added_to_first_emi": bool(bpi and bpi.added_to_first_emi),
    }
