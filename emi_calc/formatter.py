"""Output helpers for the EMI calculator.

This module renders repayment schedules, summaries, disbursement ledgers and
broken period interest in a tabular text format using built-in printing and
string formatting.
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional

from .data_models import BrokenPeriodInterest, DisbursementEntry, MonthlyPayment
from .home_loan import DisbursementValidation


def print_summary(summary: Dict[str, object]) -> None:
    """Print a summary of loan metrics in a human-readable format."""
    print("Summary")
    print("-" * 72)
    print(f"Principal          : {summary['principal']:.2f}")
    print(f"Annual rate        : {summary['annual_rate']:.4f}% ({summary['compounding'].lower()})")
    print(f"Initial EMI        : {summary['initial_emi']:.2f}")
    print(f"Total interest     : {summary['total_interest']:.2f}")
    print(f"Total amount paid  : {summary['total_amount_paid']:.2f}")
    print(f"APR                : {summary['apr']:.4f}%")
    print(f"Tenure (months)    : {summary['tenure_months']} planned, {summary['actual_tenure']} actual")
    print(f"Original end date  : {summary['original_end_date']}")
    print(f"Last payment date  : {summary['last_payment_date']}")
    print(f"Payments made      : {summary['payments_made']}")
    if summary.get("max_payment"):
        print(f"Highest payment    : {summary['max_payment']:.2f}")
    if summary.get("bpi_amount"):
        where = "added to first EMI" if summary["bpi_added_to_first_emi"] else "charged separately"
        print(f"Broken period int. : {summary['bpi_amount']:.2f} ({where})")
    if summary.get("final_balance"):
        print(f"Unpaid balance     : {summary['final_balance']:.2f}")
    print("-" * 72)


def print_schedule(schedule: Iterable[MonthlyPayment]) -> None:
    """Print the repayment schedule as a simple tab separated table."""
    headers = ["Month", "Date", "EMI", "Principal", "Interest", "Balance", "Rate", "Type"]
    print("\t".join(headers))
    for entry in schedule:
        row = [
            str(entry.month_number),
            entry.payment_date.isoformat(),
            f"{entry.emi:.2f}",
            f"{entry.principal_paid:.2f}",
            f"{entry.interest_paid:.2f}",
            f"{entry.remaining_balance:.2f}",
            f"{entry.current_rate:.4f}",
            entry.payment_type.value,
        ]
        print("\t".join(row))


def print_disbursements(ledger: Iterable[DisbursementEntry]) -> None:
    print("Disbursements")
    print("Date\tAmount\tCumulative\tDescription")
    for entry in ledger:
        print(
            f"{entry.disbursement_date.isoformat()}\t{entry.amount:.2f}\t"
            f"{entry.cumulative_disbursed:.2f}\t{entry.description}"
        )


def print_bpi(bpi: Optional[BrokenPeriodInterest]) -> None:
    if bpi is None:
        print("No broken period interest")
        return
    print("Broken period interest")
    print("-" * 72)
    print(f"Issue date         : {bpi.issue_date.isoformat()}")
    print(f"First EMI date     : {bpi.first_emi_date.isoformat()}")
    print(f"Days               : {bpi.day_count}")
    print(f"Amount             : {bpi.interest_amount:.2f}")
    print(bpi.description)


def print_validation(result: DisbursementValidation) -> None:
    if result.is_valid:
        print("Disbursement phases are valid")
        return
    print("Disbursement phases are invalid:")
    for error in result.errors:
        print(f"  - {error}")


def print_comparison(s1: Dict[str, object], s2: Dict[str, object]) -> None:
    """Print a comparison of two loan summaries side by side.

    The difference column is scenario2 - scenario1, so a negative difference
    means the second scenario is cheaper or shorter.
    """
    print("Comparison")
    print("=" * 72)
    keys = [
        "initial_emi",
        "total_interest",
        "total_amount_paid",
        "apr",
        "actual_tenure",
    ]
    print(f"{'Metric':20s} {'Scenario1':>15s} {'Scenario2':>15s} {'Difference':>15s}")
    for key in keys:
        v1 = s1.get(key)
        v2 = s2.get(key)
        diff = v2 - v1
        print(f"{key:20s} {v1:15.2f} {v2:15.2f} {diff:15.2f}")
    print("=" * 72)
