"""Data models for the EMI calculator.

This module defines the dataclasses and enums exchanged with the calculation
engine: the loan terms (``LoanInput``) with their moratorium windows and
disbursement phases, and the generated schedule (``LoanOutput``) with its
monthly rows, disbursement ledger, pre-EMI interest and broken period
interest. Inputs and outputs are frozen so that one computation can never
mutate another's data; derived totals are always recomputed from the rows.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple


class LoanConfigurationError(ValueError):
    """Raised when loan terms are unusable or fail a strict validation."""


class SnapshotNotFoundError(LookupError):
    """Raised when a schedule version required for a modification is missing."""


class CompoundingFrequency(str, Enum):
    MONTHLY = "MONTHLY"
    DAILY = "DAILY"


class MoratoriumType(str, Enum):
    FULL = "FULL"
    INTEREST_ONLY = "INTEREST_ONLY"
    PARTIAL = "PARTIAL"


class FloatingStrategy(str, Enum):
    EMI_CONSTANT = "EMI_CONSTANT"
    TENURE_CONSTANT = "TENURE_CONSTANT"


class PaymentType(str, Enum):
    NORMAL = "NORMAL"
    NORMAL_WITH_BPI = "NORMAL_WITH_BPI"
    PRE_EMI = "PRE_EMI"
    MORATORIUM_FULL = "MORATORIUM_FULL"
    MORATORIUM_INTEREST = "MORATORIUM_INTEREST"
    MORATORIUM_PARTIAL = "MORATORIUM_PARTIAL"
    EXTENDED = "EXTENDED"
    # provenance tags used by hybrid (stitched) schedules
    PAID = "PAID"
    FUTURE = "FUTURE"


@dataclass(frozen=True)
class MoratoriumPeriod:
    """A window of months with a relaxed repayment policy.

    Attributes
    ----------
    start_month: int
        First month of the window (1-based, inclusive).
    end_month: int
        Last month of the window (inclusive).
    type: MoratoriumType
        Policy applied inside the window.
    partial_payment_emi: Decimal
        Flat amount collected each month when ``type`` is ``PARTIAL``.
    """

    start_month: int
    end_month: int
    type: MoratoriumType = MoratoriumType.FULL
    partial_payment_emi: Decimal = Decimal("0")

    def covers(self, month: int) -> bool:
        return self.start_month <= month <= self.end_month


@dataclass(frozen=True)
class DisbursementPhase:
    """A tranche of the principal released on ``disbursement_date``."""

    disbursement_date: date
    amount: Decimal
    description: str = ""


@dataclass(frozen=True)
class LoanInput:
    """Terms of one loan, as consumed by a single computation.

    ``start_date`` is the first EMI date and ``loan_issue_date`` the date the
    money was released; the gap between them drives broken period interest.
    The explicit ``moratorium_periods`` take precedence over the simple
    ``moratorium_months``/``moratorium_type`` pair for every month they cover.

    Disbursement phases are not checked against the principal here; use
    ``emi_calc.home_loan.validate_disbursement`` for that.
    """

    principal: Decimal
    annual_rate: Decimal  # nominal annual rate in percent
    tenure_months: int
    start_date: date
    loan_issue_date: Optional[date] = None
    compounding: CompoundingFrequency = CompoundingFrequency.DAILY
    floating_strategy: FloatingStrategy = FloatingStrategy.EMI_CONSTANT
    moratorium_months: int = 0
    moratorium_type: MoratoriumType = MoratoriumType.FULL
    partial_payment_emi: Decimal = Decimal("0")
    moratorium_periods: Tuple[MoratoriumPeriod, ...] = ()
    disbursement_phases: Tuple[DisbursementPhase, ...] = ()

    # When set the engine uses this installment instead of solving for one.
    # Rate resets under EMI_CONSTANT keep the previous EMI this way.
    fixed_emi: Optional[Decimal] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "moratorium_periods", tuple(self.moratorium_periods))
        object.__setattr__(self, "disbursement_phases", tuple(self.disbursement_phases))
        if self.principal <= 0:
            raise LoanConfigurationError("Principal must be positive")
        if self.annual_rate < 0:
            raise LoanConfigurationError("Annual rate cannot be negative")
        if self.tenure_months <= 0:
            raise LoanConfigurationError("Tenure must be a positive number of months")
        if self.moratorium_months < 0:
            raise LoanConfigurationError("Moratorium months cannot be negative")

    @property
    def has_phased_disbursement(self) -> bool:
        return bool(self.disbursement_phases)

    def moratorium_for(self, month: int) -> Optional[Tuple[MoratoriumType, Decimal]]:
        """Return the moratorium policy for ``month`` or ``None`` for a normal month."""
        for period in self.moratorium_periods:
            if period.covers(month):
                return period.type, period.partial_payment_emi
        if month <= self.moratorium_months:
            return self.moratorium_type, self.partial_payment_emi
        return None


@dataclass(frozen=True)
class MonthlyPayment:
    """One row of the repayment schedule.

    During a full moratorium ``emi``, ``principal_paid`` and ``interest_paid``
    are zero and the accrued interest shows up in ``remaining_balance``. Pre-EMI
    rows report the disbursed balance as ``remaining_balance``.
    """

    month_number: int
    emi: Decimal
    principal_paid: Decimal
    interest_paid: Decimal
    remaining_balance: Decimal
    current_rate: Decimal
    payment_date: date
    payment_type: PaymentType


@dataclass(frozen=True)
class DisbursementEntry:
    disbursement_date: date
    amount: Decimal
    cumulative_disbursed: Decimal
    description: str = ""


@dataclass(frozen=True)
class PreEmiPayment:
    payment_date: date
    interest_amount: Decimal
    disbursed_balance: Decimal
    current_rate: Decimal
    days_in_period: int


@dataclass(frozen=True)
class BrokenPeriodInterest:
    """Interest for the gap between loan issue and the first EMI date.

    Attributes
    ----------
    day_count: int
        Days between ``issue_date`` and ``first_emi_date``.
    added_to_first_emi: bool
        True when the amount was folded into the first schedule row; otherwise
        it is a separate line item charged outside the schedule.
    """

    issue_date: date
    first_emi_date: date
    day_count: int
    interest_amount: Decimal
    added_to_first_emi: bool
    description: str


@dataclass(frozen=True)
class LoanCharge:
    """A fee levied on the loan; recurring fees apply every month of the tenure."""

    charge_type: str
    amount: Decimal
    is_recurring: bool = False
    payable_to: str = ""


@dataclass(frozen=True)
class LoanOutput:
    """A generated schedule and everything derived from it."""

    initial_emi: Decimal
    payments: Tuple[MonthlyPayment, ...] = ()
    disbursements: Tuple[DisbursementEntry, ...] = ()
    pre_emi_payments: Tuple[PreEmiPayment, ...] = ()
    broken_period_interest: Optional[BrokenPeriodInterest] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "payments", tuple(self.payments))
        object.__setattr__(self, "disbursements", tuple(self.disbursements))
        object.__setattr__(self, "pre_emi_payments", tuple(self.pre_emi_payments))

    @property
    def total_interest_paid(self) -> Decimal:
        return sum((p.interest_paid for p in self.payments), Decimal("0"))

    @property
    def total_amount_paid(self) -> Decimal:
        # pre-EMI interest is already present as PRE_EMI rows
        return sum((p.emi for p in self.payments), Decimal("0"))

    @property
    def actual_tenure(self) -> int:
        return len(self.payments)

    @property
    def final_balance(self) -> Decimal:
        return self.payments[-1].remaining_balance if self.payments else Decimal("0")
