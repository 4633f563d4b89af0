"""
Tests for the ``emi-calc`` command line interface.
"""

from __future__ import annotations

import json

import pytest
from click.testing import CliRunner

from emi_calc.main import cli

LOAN_ARGS = ["-p", "100k", "-r", "12", "-t", "12", "-s", "2024-01-05", "--compounding", "monthly"]


@pytest.fixture
def runner():
    return CliRunner()


class TestSchedule:
    def test_prints_summary_and_rows(self, runner):
        result = runner.invoke(cli, ["schedule", *LOAN_ARGS])

        assert result.exit_code == 0, result.output
        assert "Summary" in result.output
        assert "8884.88" in result.output
        assert "2024-12-05" in result.output

    def test_json_export(self, runner, tmp_path):
        path = tmp_path / "schedule.json"
        result = runner.invoke(cli, ["schedule", *LOAN_ARGS, "--output", str(path)])

        assert result.exit_code == 0, result.output
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["loan"]["principal"] == "100000"
        assert len(data["schedule"]["payments"]) == 12
        assert data["summary"]["actual_tenure"] == 12

    def test_csv_export(self, runner, tmp_path):
        path = tmp_path / "schedule.csv"
        result = runner.invoke(cli, ["schedule", *LOAN_ARGS, "--output", str(path)])

        assert result.exit_code == 0, result.output
        lines = path.read_text(encoding="utf-8").splitlines()
        assert lines[0] == "Month,Date,EMI,Principal,Interest,Balance,Rate,Type"
        assert len(lines) == 13

    def test_unsupported_export(self, runner, tmp_path):
        result = runner.invoke(cli, ["schedule", *LOAN_ARGS, "--output", str(tmp_path / "out.txt")])
        assert result.exit_code == 2

    def test_home_loan_prints_disbursements(self, runner):
        result = runner.invoke(
            cli,
            [
                "schedule",
                "-p", "2m", "-r", "9", "-t", "120", "-s", "2024-06-10", "--compounding", "monthly",
                "--phase", "2024-01-10:1m:Foundation",
                "--phase", "2024-03-10:1m:Structure",
            ],
        )

        assert result.exit_code == 0, result.output
        assert "Disbursements" in result.output
        assert "PRE_EMI" in result.output

    def test_moratorium_option(self, runner):
        result = runner.invoke(cli, ["schedule", *LOAN_ARGS, "--moratorium", "1:2:interest-only"])

        assert result.exit_code == 0, result.output
        assert "MORATORIUM_INTEREST" in result.output

    @pytest.mark.parametrize(
        "extra",
        [
            ["--moratorium", "1:2"],
            ["--moratorium", "1:2:holiday"],
            ["--phase", "2024-01-10"],
            ["--charge", "100:weekly"],
        ],
    )
    def test_malformed_options(self, runner, extra):
        result = runner.invoke(cli, ["schedule", *LOAN_ARGS, *extra])
        assert result.exit_code == 2

    def test_invalid_amount(self, runner):
        result = runner.invoke(cli, ["schedule", "-p", "abc", "-r", "12", "-t", "12", "-s", "2024-01-05"])

        assert result.exit_code == 2
        assert "Invalid amount" in result.output

    def test_invalid_log_level(self, runner):
        result = runner.invoke(cli, ["schedule", *LOAN_ARGS], env={"EMI_CALC_LOG_LEVEL": "LOUD"})
        assert result.exit_code == 2


class TestOtherCommands:
    def test_summary_with_charge(self, runner):
        result = runner.invoke(cli, ["summary", *LOAN_ARGS, "--charge", "1200"])

        assert result.exit_code == 0, result.output
        assert "APR" in result.output

    def test_summary_json(self, runner, tmp_path):
        path = tmp_path / "summary.json"
        result = runner.invoke(cli, ["summary", *LOAN_ARGS, "--output", str(path)])

        assert result.exit_code == 0, result.output
        assert json.loads(path.read_text(encoding="utf-8"))["summary"]["tenure_months"] == 12

    def test_bpi(self, runner):
        result = runner.invoke(
            cli, ["bpi", "-p", "100k", "-r", "10", "-t", "12", "-s", "2024-01-10", "--issue-date", "2024-01-01"]
        )

        assert result.exit_code == 0, result.output
        assert "246.58" in result.output
        assert "Added to first EMI" in result.output

    def test_no_bpi(self, runner):
        result = runner.invoke(cli, ["bpi", *LOAN_ARGS])
        assert "No broken period interest" in result.output

    def test_validate_ok(self, runner):
        result = runner.invoke(
            cli,
            ["validate", "-p", "2m", "-r", "9", "-t", "120", "-s", "2024-06-10",
             "--phase", "2024-01-10:1m", "--phase", "2024-03-10:1m"],
        )

        assert result.exit_code == 0
        assert "valid" in result.output

    def test_validate_mismatch(self, runner):
        result = runner.invoke(
            cli,
            ["validate", "-p", "3m", "-r", "9", "-t", "120", "-s", "2024-06-10",
             "--phase", "2024-01-10:1m", "--phase", "2024-03-10:1m"],
        )

        assert result.exit_code == 1
        assert "does not match principal" in result.output

    def test_compare(self, runner):
        result = runner.invoke(
            cli,
            [
                "compare",
                "--scenario1", "-p 100k -r 12 -t 12 -s 2024-01-05 --compounding monthly",
                "--scenario2", "-p 100k -r 10 -t 12 -s 2024-01-05 --compounding monthly",
            ],
        )

        assert result.exit_code == 0, result.output
        assert "Comparison" in result.output
        assert "initial_emi" in result.output

    def test_compare_incomplete_scenario(self, runner):
        result = runner.invoke(
            cli,
            ["compare", "--scenario1", "-p 100k -r 12", "--scenario2", "-p 100k -r 10 -t 12 -s 2024-01-05"],
        )
        assert result.exit_code == 2


class TestStitch:
    def test_stitch_exported_schedule(self, runner, tmp_path):
        prior = tmp_path / "prior.json"
        runner.invoke(cli, ["schedule", *LOAN_ARGS, "--output", str(prior)])

        new_args = ["-p", "100k", "-r", "15", "-t", "12", "-s", "2024-01-05", "--compounding", "monthly"]
        result = runner.invoke(
            cli, ["stitch", "--prior", str(prior), "--cutoff", "2024-06-05", "--mark-future", *new_args]
        )

        assert result.exit_code == 0, result.output
        assert "PAID" in result.output
        assert "FUTURE" in result.output
        assert "2024-07-01" in result.output

    def test_stitch_unreadable_prior(self, runner, tmp_path):
        prior = tmp_path / "prior.json"
        prior.write_text("not json", encoding="utf-8")
        result = runner.invoke(cli, ["stitch", "--prior", str(prior), "--cutoff", "2024-06-05", *LOAN_ARGS])

        assert result.exit_code == 2
