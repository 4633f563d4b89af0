"""Versioned repayment schedules.

Each change to a running loan produces a new schedule version instead of
overwriting the old one. ``SnapshotLog`` is the in-memory, append-only list
of those versions; ``emi_calc_web.snapshot_store`` persists it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from .apr import calculate_apr
from .data_models import (
    FloatingStrategy,
    LoanCharge,
    LoanInput,
    LoanOutput,
    SnapshotNotFoundError,
)
from .engine import compute_loan
from .stitcher import SETTLED_BALANCE, stitch_version
from .utils import first_of_next_month

logger = logging.getLogger(__name__)

INITIAL_MEMO = "Initial repayment schedule"


@dataclass(frozen=True)
class Snapshot:
    """One immutable version of a loan's repayment schedule.

    Attributes
    ----------
    version: int
        1-based position in the log.
    principal_balance: Decimal
        Principal the schedule was computed on.
    months_remaining: int
        Rows in the schedule.
    apr: Decimal
        APR of the terms this version was computed from.
    """

    version: int
    output: LoanOutput
    memo: str
    annual_rate: Decimal
    principal_balance: Decimal
    months_remaining: int
    apr: Decimal
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class SnapshotLog:
    """Append-only sequence of schedule versions numbered from 1."""

    def __init__(self, snapshots: Iterable[Snapshot] = ()):
        self._snapshots: List[Snapshot] = []
        for snapshot in snapshots:
            if snapshot.version != len(self._snapshots) + 1:
                raise ValueError(
                    f"Snapshot version {snapshot.version} out of sequence "
                    f"(expected {len(self._snapshots) + 1})"
                )
            self._snapshots.append(snapshot)

    def __len__(self) -> int:
        return len(self._snapshots)

    def __iter__(self) -> Iterator[Snapshot]:
        return iter(self._snapshots)

    def append(
        self,
        output: LoanOutput,
        loan: LoanInput,
        memo: str = INITIAL_MEMO,
        charges: Optional[Iterable[LoanCharge]] = None,
        created_at: Optional[datetime] = None,
    ) -> Snapshot:
        """Record ``output`` as the next version and return the snapshot."""
        snapshot = Snapshot(
            version=len(self._snapshots) + 1,
            output=output,
            memo=memo,
            annual_rate=loan.annual_rate,
            principal_balance=loan.principal,
            months_remaining=output.actual_tenure,
            apr=calculate_apr(loan, output, charges),
            created_at=created_at or datetime.now(timezone.utc),
        )
        self._snapshots.append(snapshot)
        logger.info("Recorded schedule version %d: %s", snapshot.version, memo)
        return snapshot

    def get(self, version: int) -> Snapshot:
        if not 1 <= version <= len(self._snapshots):
            raise SnapshotNotFoundError(f"Schedule version {version} does not exist")
        return self._snapshots[version - 1]

    def latest(self) -> Snapshot:
        if not self._snapshots:
            raise SnapshotNotFoundError("No schedule has been recorded yet")
        return self._snapshots[-1]


def _moratorium_signature(loan: LoanInput) -> str:
    text = f"{loan.moratorium_months} months {loan.moratorium_type.value}"
    if loan.moratorium_periods:
        windows = ", ".join(
            f"{p.start_month}-{p.end_month} {p.type.value}" for p in loan.moratorium_periods
        )
        text += f" [{windows}]"
    return text


_TRACKED_FIELDS = (
    ("annualRate", lambda loan: str(loan.annual_rate)),
    ("tenureMonths", lambda loan: str(loan.tenure_months)),
    ("principal", lambda loan: str(loan.principal)),
    ("compoundingFrequency", lambda loan: loan.compounding.value),
    ("floatingStrategy", lambda loan: loan.floating_strategy.value),
    ("moratorium", _moratorium_signature),
)


def describe_changes(old: LoanInput, new: LoanInput) -> Dict[str, Tuple[str, str]]:
    """Return ``{field: (old, new)}`` for every tracked term that differs."""
    changes = {}
    for name, render in _TRACKED_FIELDS:
        before, after = render(old), render(new)
        if before != after:
            changes[name] = (before, after)
    return changes


def change_memo(changes: Dict[str, Tuple[str, str]]) -> str:
    if not changes:
        return "Loan modified: no term changes"
    parts = [f"{name} changed from {old} to {new}" for name, (old, new) in changes.items()]
    return "Loan modified: " + "; ".join(parts)


def modify_loan(
    log: SnapshotLog,
    cutoff_date: date,
    old_terms: LoanInput,
    new_terms: LoanInput,
    version: Optional[int] = None,
    charges: Optional[Iterable[LoanCharge]] = None,
) -> Snapshot:
    """Stitch a modification against ``version`` (default latest) and record it."""
    base = log.latest().version if version is None else version
    output = stitch_version(log, base, cutoff_date, new_terms)
    memo = change_memo(describe_changes(old_terms, new_terms))
    return log.append(output, new_terms, memo=memo, charges=charges)


def _balance_as_of(output: LoanOutput, as_of: date, principal: Decimal) -> Tuple[Decimal, int]:
    """Return the balance on ``as_of`` and the number of rows still due after it."""
    balance = principal
    remaining = len(output.payments)
    for row in output.payments:
        if row.payment_date > as_of:
            break
        balance = row.remaining_balance
        remaining -= 1
    return balance, remaining


def reset_rate(
    log: SnapshotLog,
    loan: LoanInput,
    benchmark_rate: Decimal,
    spread: Decimal,
    reset_date: date,
    charges: Optional[Iterable[LoanCharge]] = None,
) -> Snapshot:
    """Re-price a floating-rate loan to ``benchmark_rate + spread``.

    The remaining balance of the latest version as of ``reset_date`` is
    re-simulated over the months still remaining, starting the month after
    the reset. ``EMI_CONSTANT`` loans keep paying the previous EMI and their
    tenure absorbs the change; ``TENURE_CONSTANT`` loans get a new EMI.
    """
    latest = log.latest()
    previous_rate = latest.annual_rate
    new_rate = benchmark_rate + spread

    balance, remaining = _balance_as_of(latest.output, reset_date, loan.principal)
    remaining = max(1, remaining)
    if balance <= SETTLED_BALANCE:
        logger.warning("Rate reset on %s found no outstanding balance", reset_date.isoformat())

    fixed_emi = None
    if loan.floating_strategy is FloatingStrategy.EMI_CONSTANT:
        fixed_emi = latest.output.initial_emi
    reset_terms = replace(
        loan,
        principal=max(balance, SETTLED_BALANCE),
        annual_rate=new_rate,
        tenure_months=remaining,
        start_date=first_of_next_month(reset_date),
        loan_issue_date=None,
        moratorium_months=0,
        moratorium_periods=(),
        disbursement_phases=(),
        fixed_emi=fixed_emi,
    )
    output = compute_loan(reset_terms)
    memo = f"Rate reset from {previous_rate:.4f}% to {new_rate:.4f}%"
    logger.info("%s (EMI %.2f, %d months)", memo, output.initial_emi, output.actual_tenure)
    return log.append(output, reset_terms, memo=memo, charges=charges)
