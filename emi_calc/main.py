"""Command-line interface for the EMI calculator.

This module uses the ``click`` library to implement a multi-command
interface. Users can compute full repayment schedules (including phased
disbursement home loans), view summaries, inspect broken period interest,
validate disbursement phases, compare two loan scenarios or stitch a
modification onto a previously exported schedule. Results can be printed to
the terminal or exported to JSON/CSV files.
"""

from __future__ import annotations

import csv
import json
import logging
import shlex
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import click

from .data_models import (
    CompoundingFrequency,
    DisbursementPhase,
    FloatingStrategy,
    LoanCharge,
    LoanConfigurationError,
    LoanInput,
    LoanOutput,
    MoratoriumPeriod,
    MoratoriumType,
)
from .engine import calculate_bpi, summarize
from .formatter import (
    print_bpi,
    print_comparison,
    print_disbursements,
    print_schedule,
    print_summary,
    print_validation,
)
from .home_loan import compute_home_loan, validate_disbursement
from .serialization import input_to_dict, output_from_dict, output_to_dict
from .stitcher import stitch_schedule
from .utils import decimal_from_str, parse_amount, parse_date

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]
MAX_PRINTED_ROWS = 120


def _choice_to_enum(enum_cls, value: str):
    return enum_cls[value.upper().replace("-", "_")]


def _amount(value: str) -> Any:
    try:
        return parse_amount(value)
    except ValueError:
        raise click.BadParameter(f"Invalid amount: {value}")


def _date(value: str):
    try:
        return parse_date(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc))


def parse_moratorium_strings(values: Tuple[str, ...]) -> List[MoratoriumPeriod]:
    periods: List[MoratoriumPeriod] = []
    for item in values:
        parts = item.split(":")
        if len(parts) not in (3, 4):
            raise click.BadParameter(
                f"Moratorium must be in START:END:TYPE[:EMI] format; got {item}"
            )
        try:
            start, end = int(parts[0]), int(parts[1])
        except ValueError:
            raise click.BadParameter(f"Moratorium months must be integers; got {item}")
        try:
            typ = _choice_to_enum(MoratoriumType, parts[2])
        except KeyError:
            raise click.BadParameter(
                f"Moratorium type must be full, interest-only or partial; got {parts[2]}"
            )
        emi = _amount(parts[3]) if len(parts) == 4 else decimal_from_str("0")
        periods.append(MoratoriumPeriod(start_month=start, end_month=end, type=typ, partial_payment_emi=emi))
    return periods


def parse_phase_strings(values: Tuple[str, ...]) -> List[DisbursementPhase]:
    phases: List[DisbursementPhase] = []
    for item in values:
        parts = item.split(":", 2)
        if len(parts) < 2:
            raise click.BadParameter(f"Phase must be in DATE:AMOUNT[:DESC] format; got {item}")
        description = parts[2] if len(parts) == 3 else ""
        phases.append(DisbursementPhase(_date(parts[0]), _amount(parts[1]), description))
    return phases


def parse_charge_strings(values: Tuple[str, ...]) -> List[LoanCharge]:
    charges: List[LoanCharge] = []
    for index, item in enumerate(values, start=1):
        parts = item.split(":")
        if len(parts) > 2 or (len(parts) == 2 and parts[1].lower() not in ("recurring", "once")):
            raise click.BadParameter(f"Charge must be in AMOUNT[:recurring] format; got {item}")
        recurring = len(parts) == 2 and parts[1].lower() == "recurring"
        charges.append(LoanCharge(charge_type=f"charge{index}", amount=_amount(parts[0]), is_recurring=recurring))
    return charges


def build_loan_from_options(
    principal: str,
    rate: str,
    tenure: int,
    start_date: str,
    issue_date: Optional[str] = None,
    compounding: str = "daily",
    strategy: str = "emi-constant",
    moratorium_months: int = 0,
    moratorium_type: str = "full",
    partial_emi: Optional[str] = None,
    moratorium: Tuple[str, ...] = (),
    phase: Tuple[str, ...] = (),
    charge: Tuple[str, ...] = (),
) -> Tuple[LoanInput, List[LoanCharge]]:
    try:
        annual_rate = decimal_from_str(rate.rstrip("%"))
    except ValueError:
        raise click.BadParameter(f"Invalid rate: {rate}")
    try:
        loan = LoanInput(
            principal=_amount(principal),
            annual_rate=annual_rate,
            tenure_months=tenure,
            start_date=_date(start_date),
            loan_issue_date=_date(issue_date) if issue_date else None,
            compounding=_choice_to_enum(CompoundingFrequency, compounding),
            floating_strategy=_choice_to_enum(FloatingStrategy, strategy),
            moratorium_months=moratorium_months,
            moratorium_type=_choice_to_enum(MoratoriumType, moratorium_type),
            partial_payment_emi=_amount(partial_emi) if partial_emi else decimal_from_str("0"),
            moratorium_periods=parse_moratorium_strings(moratorium),
            disbursement_phases=parse_phase_strings(phase),
        )
    except LoanConfigurationError as exc:
        raise click.BadParameter(str(exc))
    return loan, parse_charge_strings(charge)


_LOAN_OPTIONS = [
    click.option("--principal", "-p", "principal", required=True, help="Loan amount (500k, 5m, ...)"),
    click.option("--rate", "-r", "rate", required=True, help="Nominal annual interest rate (percent)"),
    click.option("--tenure", "-t", "tenure", required=True, type=int, help="Tenure in months"),
    click.option("--start-date", "-s", "start_date", required=True, help="First EMI date (YYYY-MM-DD)"),
    click.option("--issue-date", "issue_date", help="Loan issue date, enables broken period interest"),
    click.option(
        "--compounding",
        type=click.Choice(["daily", "monthly"], case_sensitive=False),
        default="daily",
        help="Interest compounding",
    ),
    click.option(
        "--strategy",
        type=click.Choice(["emi-constant", "tenure-constant"], case_sensitive=False),
        default="emi-constant",
        help="What is kept fixed when the schedule cannot finish on time",
    ),
    click.option("--moratorium-months", "moratorium_months", type=int, default=0, help="Moratorium from month 1"),
    click.option(
        "--moratorium-type",
        "moratorium_type",
        type=click.Choice(["full", "interest-only", "partial"], case_sensitive=False),
        default="full",
    ),
    click.option("--partial-emi", "partial_emi", help="Amount paid each month of a partial moratorium"),
    click.option("--moratorium", "moratorium", multiple=True, help="Moratorium window START:END:TYPE[:EMI]"),
    click.option("--phase", "phase", multiple=True, help="Disbursement phase DATE:AMOUNT[:DESC]"),
    click.option("--charge", "charge", multiple=True, help="Fee AMOUNT[:recurring], used for the APR"),
]


def loan_options(func):
    for option in reversed(_LOAN_OPTIONS):
        func = option(func)
    return func


def export_to_json(path: Path, loan: LoanInput, output: LoanOutput, summary: Dict[str, Any]) -> None:
    """Export terms, summary and schedule to a JSON file."""
    data = {"loan": input_to_dict(loan), "summary": summary, "schedule": output_to_dict(output)}
    with path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def export_to_csv(path: Path, output: LoanOutput) -> None:
    """Export schedule rows to a CSV file."""
    header = ["Month", "Date", "EMI", "Principal", "Interest", "Balance", "Rate", "Type"]
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        for e in output.payments:
            writer.writerow(
                [
                    e.month_number,
                    e.payment_date.isoformat(),
                    f"{e.emi:.2f}",
                    f"{e.principal_paid:.2f}",
                    f"{e.interest_paid:.2f}",
                    f"{e.remaining_balance:.2f}",
                    f"{e.current_rate:.4f}",
                    e.payment_type.value,
                ]
            )


def load_schedule(path: Path) -> LoanOutput:
    """Load a schedule previously written by ``export_to_json``."""
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        return output_from_dict(data.get("schedule", data))
    except (OSError, ValueError, KeyError) as exc:
        raise click.BadParameter(f"Cannot read schedule from {path}: {exc}")


def _emit(loan: LoanInput, output: LoanOutput, summary: Dict[str, Any], destination: Optional[str]) -> None:
    if destination:
        path = Path(destination)
        if path.suffix.lower() == ".json":
            export_to_json(path, loan, output, summary)
        elif path.suffix.lower() == ".csv":
            export_to_csv(path, output)
        else:
            raise click.BadParameter("Unsupported output format; use .json or .csv")
        click.echo(f"Schedule exported to {path}")
        return
    print_summary(summary)
    if output.disbursements:
        print_disbursements(output.disbursements)
    rows = output.payments
    if len(rows) > MAX_PRINTED_ROWS:
        click.echo(f"Schedule has {len(rows)} rows; showing first {MAX_PRINTED_ROWS} rows.")
        rows = rows[:MAX_PRINTED_ROWS]
    print_schedule(rows)


@click.group()
@click.option(
    "--log-level",
    envvar="EMI_CALC_LOG_LEVEL",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging verbosity",
)
def cli(log_level: str) -> None:
    """A command-line EMI calculator for term loans and home loans."""
    logging.basicConfig(level=log_level.upper(), format="%(levelname)s %(name)s: %(message)s")


@cli.command()
@loan_options
@click.option("--output", "output", type=str, help="Output file path (.json or .csv)")
def schedule(output: Optional[str], **options: Any) -> None:
    """Compute and print the full repayment schedule."""
    loan, charges = build_loan_from_options(**options)
    result = compute_home_loan(loan)
    _emit(loan, result, summarize(loan, result, charges), output)


@cli.command()
@loan_options
@click.option("--output", "output", type=str, help="Output file path (.json)")
def summary(output: Optional[str], **options: Any) -> None:
    """Compute and print only the summary metrics for a loan."""
    loan, charges = build_loan_from_options(**options)
    summary_data = summarize(loan, compute_home_loan(loan), charges)
    if output:
        path = Path(output)
        if path.suffix.lower() != ".json":
            raise click.BadParameter("Summary export must use .json extension")
        with path.open("w", encoding="utf-8") as f:
            json.dump({"summary": summary_data}, f, indent=2)
        click.echo(f"Summary exported to {path}")
    else:
        print_summary(summary_data)


@cli.command()
@loan_options
def bpi(**options: Any) -> None:
    """Show the broken period interest between issue date and first EMI."""
    loan, _ = build_loan_from_options(**options)
    print_bpi(calculate_bpi(loan))


@cli.command()
@loan_options
@click.pass_context
def validate(ctx: click.Context, **options: Any) -> None:
    """Check disbursement phases against the principal; exit 1 when invalid."""
    loan, _ = build_loan_from_options(**options)
    result = validate_disbursement(loan)
    print_validation(result)
    if not result:
        ctx.exit(1)


@click.command(name="scenario", add_help_option=False)
@loan_options
def _scenario(**options: Any) -> None:
    pass


def parse_scenario_opts(opts: str) -> Dict[str, Any]:
    """Parse a quoted option string with the same options as ``schedule``."""
    try:
        ctx = _scenario.make_context("scenario", shlex.split(opts))
    except click.ClickException as exc:
        raise click.BadParameter(f"Invalid scenario '{opts}': {exc.format_message()}")
    return ctx.params


@cli.command()
@click.option("--scenario1", "scenario1", required=True, help="First scenario options quoted string")
@click.option("--scenario2", "scenario2", required=True, help="Second scenario options quoted string")
def compare(scenario1: str, scenario2: str) -> None:
    """Compare two loan scenarios.

    Scenarios are provided as quoted option strings, for example:

        emi-calc compare --scenario1 "-p 5m -r 8.5 -t 240 -s 2024-01-05" --scenario2 "-p 5m -r 8.1 -t 240 -s 2024-01-05"
    """
    summaries = []
    for opts in (scenario1, scenario2):
        loan, charges = build_loan_from_options(**parse_scenario_opts(opts))
        summaries.append(summarize(loan, compute_home_loan(loan), charges))
    print_comparison(summaries[0], summaries[1])


@cli.command()
@click.option("--prior", "prior", required=True, type=click.Path(exists=True, dir_okay=False), help="Schedule JSON exported by 'schedule --output'")
@click.option("--cutoff", "cutoff", required=True, help="Installments dated on or before this are kept (YYYY-MM-DD)")
@click.option("--mark-future", is_flag=True, help="Tag recomputed rows FUTURE")
@loan_options
@click.option("--output", "output", type=str, help="Output file path (.json or .csv)")
def stitch(prior: str, cutoff: str, mark_future: bool, output: Optional[str], **options: Any) -> None:
    """Apply new terms from a cutoff date onto a previously exported schedule.

    The loan options describe the modified loan; ``--tenure`` is its full
    tenure including the installments already paid.
    """
    loan, charges = build_loan_from_options(**options)
    prior_output = load_schedule(Path(prior))
    result = stitch_schedule(prior_output, _date(cutoff), loan, mark_future=mark_future)
    _emit(loan, result, summarize(loan, result, charges), output)


if __name__ == "__main__":
    cli()
