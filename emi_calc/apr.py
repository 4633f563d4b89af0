"""Annual percentage rate from a computed schedule and its fees.

The APR used here is the lender's fee-amortization approximation:

    APR% = ((total_fees + total_interest) / principal / tenure_months) * 100 + annual_rate%

One-time fees are counted once and recurring fees once per month of tenure.
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from .data_models import LoanCharge, LoanInput, LoanOutput

logger = logging.getLogger(__name__)

APR_PLACES = Decimal("0.0001")
APR_CEILING = Decimal("9999.9999")


def total_fees(charges: Optional[Iterable[LoanCharge]], tenure_months: int) -> Decimal:
    one_time = Decimal("0")
    recurring = Decimal("0")
    for charge in charges or ():
        if charge.is_recurring:
            recurring += charge.amount
        else:
            one_time += charge.amount
    return one_time + recurring * tenure_months


def calculate_apr(
    loan: LoanInput,
    output: LoanOutput,
    charges: Optional[Iterable[LoanCharge]] = None,
) -> Decimal:
    """Return the APR in percent, rounded half-up to four decimal places.

    A result above 9999.9999 is treated as an overflow of the approximation
    and the nominal rate is returned instead.
    """
    fees = total_fees(charges, loan.tenure_months)
    interest = output.total_interest_paid
    fee_and_interest_rate = (fees + interest) / loan.principal / Decimal(loan.tenure_months) * 100
    apr = (fee_and_interest_rate + loan.annual_rate).quantize(APR_PLACES, rounding=ROUND_HALF_UP)
    if apr > APR_CEILING:
        logger.warning("APR %s overflows; falling back to the nominal rate %s", apr, loan.annual_rate)
        return loan.annual_rate.quantize(APR_PLACES, rounding=ROUND_HALF_UP)
    logger.debug(
        "APR %s%% (interest %.2f, fees %.2f, principal %.2f, months %d)",
        apr,
        interest,
        fees,
        loan.principal,
        loan.tenure_months,
    )
    return apr
