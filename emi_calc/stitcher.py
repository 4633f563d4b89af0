"""Hybrid schedules: realized history up to a cutoff, new terms afterwards.

When a running loan is modified the installments already due stay exactly as
they were and only the remainder is recomputed. ``stitch_schedule`` takes
the prior schedule, keeps the rows dated on or before the cutoff, and
appends a tail simulated from the outstanding balance under the new terms.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional, Tuple

from .data_models import (
    DisbursementPhase,
    LoanInput,
    LoanOutput,
    MonthlyPayment,
    MoratoriumPeriod,
    PaymentType,
)
from .engine import compute_loan
from .home_loan import build_disbursement_ledger, compute_home_loan
from .utils import add_months, first_of_next_month

if TYPE_CHECKING:
    from .versioning import SnapshotLog

logger = logging.getLogger(__name__)

# Rows collecting no more than this are not installments and are not preserved.
MIN_INSTALLMENT = Decimal("0.01")
SETTLED_BALANCE = Decimal("0.01")
CARRIED_BALANCE_DESCRIPTION = "Outstanding balance carried forward"


def _split_realized(
    prior: LoanOutput, cutoff_date: date
) -> Tuple[List[MonthlyPayment], int, Optional[MonthlyPayment]]:
    """Return ``(preserved_rows, realized_count, last_realized_row)``.

    Every row dated on or before the cutoff is realized and moves the
    balance; only rows that actually collected money are preserved.
    """
    preserved: List[MonthlyPayment] = []
    realized = 0
    last = None
    for row in prior.payments:
        if row.payment_date > cutoff_date:
            break
        realized += 1
        last = row
        if row.emi > MIN_INSTALLMENT:
            preserved.append(replace(row, payment_type=PaymentType.PAID))
    return preserved, realized, last


def _carried_from(last_realized: Optional[MonthlyPayment], tail_start: date) -> date:
    """Date from which the carried balance accrues pre-EMI interest again.

    A pre-EMI row pays the month that starts on its own date, so a balance
    last charged by one is covered until the same day of the next month.
    """
    if last_realized is not None and last_realized.payment_type is PaymentType.PRE_EMI:
        return max(tail_start, add_months(last_realized.payment_date, 1))
    return tail_start


def _rebase_moratorium(terms: LoanInput, elapsed: int) -> dict:
    """Shift the moratorium windows of ``terms`` onto a tail's month index."""
    periods = []
    for period in terms.moratorium_periods:
        end = period.end_month - elapsed
        if end < 1:
            continue
        periods.append(
            MoratoriumPeriod(
                start_month=max(1, period.start_month - elapsed),
                end_month=end,
                type=period.type,
                partial_payment_emi=period.partial_payment_emi,
            )
        )
    return {
        "moratorium_months": max(0, terms.moratorium_months - elapsed),
        "moratorium_periods": tuple(periods),
    }


def _tail_terms(
    new_terms: LoanInput,
    balance: Decimal,
    remaining_tenure: int,
    tail_start: date,
    carried_from: date,
    elapsed: int,
    future_phases: List[DisbursementPhase],
) -> LoanInput:
    changes = dict(
        tenure_months=remaining_tenure,
        start_date=tail_start,
        loan_issue_date=None,
        **_rebase_moratorium(new_terms, elapsed),
    )
    if not future_phases:
        return replace(new_terms, principal=balance, disbursement_phases=(), **changes)

    phases = list(future_phases)
    if balance > SETTLED_BALANCE:
        first = phases[0]
        if first.disbursement_date <= carried_from:
            # the next tranche arrives before the carried balance is due again
            phases[0] = replace(first, amount=first.amount + balance)
        else:
            phases.insert(0, DisbursementPhase(carried_from, balance, CARRIED_BALANCE_DESCRIPTION))
    principal = sum((phase.amount for phase in phases), Decimal("0"))
    return replace(new_terms, principal=principal, disbursement_phases=tuple(phases), **changes)


def stitch_schedule(
    prior: LoanOutput,
    cutoff_date: date,
    new_terms: LoanInput,
    *,
    mark_future: bool = False,
) -> LoanOutput:
    """Combine the realized part of ``prior`` with a tail under ``new_terms``.

    Parameters
    ----------
    prior: LoanOutput
        The schedule in force before the modification.
    cutoff_date: date
        Rows dated on or before this date are kept as paid history.
    new_terms: LoanInput
        Terms for the remainder. ``tenure_months`` is the full tenure of the
        modified loan; the preserved installments are deducted from it.
    mark_future: bool
        Tag the tail rows ``FUTURE`` instead of keeping their simulated type.

    Returns
    -------
    LoanOutput
        Preserved rows tagged ``PAID`` followed by the tail, numbered 1..N.
    """
    preserved, realized, last_realized = _split_realized(prior, cutoff_date)
    balance = new_terms.principal if last_realized is None else last_realized.remaining_balance
    remaining_tenure = new_terms.tenure_months - len(preserved)

    phases = sorted(new_terms.disbursement_phases, key=lambda phase: phase.disbursement_date)
    future_phases = [phase for phase in phases if phase.disbursement_date > cutoff_date]
    if future_phases and last_realized is None:
        # nothing realized yet: only what was disbursed by the cutoff is outstanding
        balance = sum(
            (phase.amount for phase in phases if phase.disbursement_date <= cutoff_date), Decimal("0")
        )

    tail_rows: List[MonthlyPayment] = []
    tail: Optional[LoanOutput] = None
    if remaining_tenure > 0 and (balance > SETTLED_BALANCE or future_phases):
        tail_start = first_of_next_month(cutoff_date)
        carried_from = _carried_from(last_realized, tail_start)
        terms = _tail_terms(
            new_terms, balance, remaining_tenure, tail_start, carried_from, realized, future_phases
        )
        tail = compute_home_loan(terms) if future_phases else compute_loan(terms)
        for row in tail.payments:
            if mark_future:
                row = replace(row, payment_type=PaymentType.FUTURE)
            tail_rows.append(row)
            if row.remaining_balance <= SETTLED_BALANCE:
                break
    elif balance > SETTLED_BALANCE or future_phases:
        logger.warning(
            "No tenure left after %s: %.2f outstanding is not rescheduled",
            cutoff_date.isoformat(),
            balance,
        )
    else:
        logger.debug("Nothing outstanding after %s", cutoff_date.isoformat())

    rows = [
        replace(row, month_number=number)
        for number, row in enumerate(preserved + tail_rows, start=1)
    ]

    realized_phases = [
        DisbursementPhase(entry.disbursement_date, entry.amount, entry.description)
        for entry in prior.disbursements
        if entry.disbursement_date <= cutoff_date
    ]
    ledger = build_disbursement_ledger(realized_phases + future_phases)
    pre_emi = [p for p in prior.pre_emi_payments if p.payment_date <= cutoff_date]
    if tail is not None:
        pre_emi.extend(tail.pre_emi_payments)

    logger.info(
        "Stitched schedule at %s: %d paid rows, %d new rows",
        cutoff_date.isoformat(),
        len(preserved),
        len(tail_rows),
    )
    return LoanOutput(
        initial_emi=tail.initial_emi if tail is not None else prior.initial_emi,
        payments=tuple(rows),
        disbursements=tuple(ledger),
        pre_emi_payments=tuple(pre_emi),
        broken_period_interest=prior.broken_period_interest,
    )


def stitch_version(
    log: "SnapshotLog",
    version: int,
    cutoff_date: date,
    new_terms: LoanInput,
    *,
    mark_future: bool = False,
) -> LoanOutput:
    """Stitch against snapshot ``version`` of ``log``.

    Raises ``SnapshotNotFoundError`` when the version does not exist.
    """
    snapshot = log.get(version)
    return stitch_schedule(snapshot.output, cutoff_date, new_terms, mark_future=mark_future)
