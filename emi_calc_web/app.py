"""JSON API for the EMI calculator.

Schedules can be computed statelessly (``POST /api/schedule``) or registered
as loans whose schedule versions are kept in the snapshot store, then
modified or re-priced over time.
"""

import logging
import os
from dataclasses import replace
from typing import Any, Dict, List, Optional

from flask import Flask, jsonify, request

from emi_calc.data_models import LoanCharge, LoanConfigurationError, SnapshotNotFoundError
from emi_calc.engine import summarize
from emi_calc.home_loan import compute_home_loan
from emi_calc.serialization import input_from_dict, input_to_dict, output_to_dict
from emi_calc.utils import decimal_from_str, parse_date
from emi_calc.versioning import SnapshotLog, modify_loan, reset_rate
from emi_calc_web.snapshot_store import SnapshotStore, create_store_from_env

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8710


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise LoanConfigurationError("Request body must be a JSON object")
    return data


def _charges_from_body(data: Dict[str, Any]) -> List[LoanCharge]:
    charges = []
    for item in data.get("charges") or ():
        try:
            charges.append(
                LoanCharge(
                    charge_type=item.get("charge_type", "fee"),
                    amount=decimal_from_str(item["amount"]),
                    is_recurring=bool(item.get("is_recurring", False)),
                    payable_to=item.get("payable_to", ""),
                )
            )
        except (AttributeError, KeyError, ValueError) as exc:
            raise LoanConfigurationError(f"Invalid charge: {item}") from exc
    return charges


def _required(data: Dict[str, Any], key: str) -> Any:
    if data.get(key) in (None, ""):
        raise LoanConfigurationError(f"Missing field: {key}")
    return data[key]


def _date_field(data: Dict[str, Any], key: str):
    try:
        return parse_date(str(_required(data, key)))
    except ValueError as exc:
        raise LoanConfigurationError(str(exc)) from exc


def _decimal_field(data: Dict[str, Any], key: str, default: Optional[str] = None):
    value = data.get(key, default)
    if value is None:
        raise LoanConfigurationError(f"Missing field: {key}")
    try:
        return decimal_from_str(value)
    except ValueError as exc:
        raise LoanConfigurationError(str(exc)) from exc


def _snapshot_meta(snapshot) -> Dict[str, Any]:
    return {
        "version": snapshot.version,
        "memo": snapshot.memo,
        "annual_rate": str(snapshot.annual_rate),
        "principal_balance": str(snapshot.principal_balance),
        "months_remaining": snapshot.months_remaining,
        "apr": str(snapshot.apr),
        "created_at": snapshot.created_at.isoformat(),
    }


def create_app(store: Optional[SnapshotStore] = None) -> Flask:
    app = Flask(__name__)
    app.config["SNAPSHOT_STORE"] = store or create_store_from_env(os.environ.get("SNAPSHOT_DATABASE_URL"))

    def snapshot_store() -> SnapshotStore:
        return app.config["SNAPSHOT_STORE"]

    @app.errorhandler(LoanConfigurationError)
    def handle_configuration_error(exc):
        return jsonify({"error": str(exc)}), 400

    @app.errorhandler(SnapshotNotFoundError)
    def handle_not_found(exc):
        return jsonify({"error": str(exc)}), 404

    @app.route("/api/schedule", methods=["POST"])
    def schedule():
        data = _json_body()
        loan = input_from_dict(data)
        output = compute_home_loan(loan)
        return jsonify(
            {
                "summary": summarize(loan, output, _charges_from_body(data)),
                "schedule": output_to_dict(output),
            }
        )

    @app.route("/api/loans", methods=["POST"])
    def create_loan():
        data = _json_body()
        loan = input_from_dict(data)
        charges = _charges_from_body(data)
        output = compute_home_loan(loan)
        snapshot = SnapshotLog().append(output, loan, charges=charges)
        loan_id = snapshot_store().create_loan(loan)
        snapshot_store().save_snapshot(loan_id, snapshot)
        return (
            jsonify(
                {
                    "loan_id": loan_id,
                    "snapshot": _snapshot_meta(snapshot),
                    "summary": summarize(loan, output, charges),
                }
            ),
            201,
        )

    @app.route("/api/loans/<loan_id>/snapshots", methods=["GET"])
    def list_snapshots(loan_id: str):
        return jsonify({"loan_id": loan_id, "snapshots": snapshot_store().list_snapshots(loan_id)})

    @app.route("/api/loans/<loan_id>/snapshots/<int:version>", methods=["GET"])
    def get_snapshot(loan_id: str, version: int):
        snapshot = snapshot_store().load_log(loan_id).get(version)
        return jsonify({**_snapshot_meta(snapshot), "schedule": output_to_dict(snapshot.output)})

    @app.route("/api/loans/<loan_id>/modify", methods=["POST"])
    def modify(loan_id: str):
        data = _json_body()
        old_terms = snapshot_store().get_terms(loan_id)
        new_terms = input_from_dict({**input_to_dict(old_terms), **(data.get("terms") or {})})
        cutoff = _date_field(data, "cutoff_date")
        version = data.get("version")
        log = snapshot_store().load_log(loan_id)
        snapshot = modify_loan(
            log,
            cutoff,
            old_terms,
            new_terms,
            version=int(version) if version is not None else None,
            charges=_charges_from_body(data),
        )
        snapshot_store().save_snapshot(loan_id, snapshot)
        snapshot_store().update_terms(loan_id, new_terms)
        return jsonify({**_snapshot_meta(snapshot), "schedule": output_to_dict(snapshot.output)}), 201

    @app.route("/api/loans/<loan_id>/rate-reset", methods=["POST"])
    def rate_reset(loan_id: str):
        data = _json_body()
        loan = snapshot_store().get_terms(loan_id)
        benchmark = _decimal_field(data, "benchmark_rate")
        spread = _decimal_field(data, "spread", "0")
        reset_date = _date_field(data, "reset_date")
        log = snapshot_store().load_log(loan_id)
        snapshot = reset_rate(log, loan, benchmark, spread, reset_date, charges=_charges_from_body(data))
        snapshot_store().save_snapshot(loan_id, snapshot)
        snapshot_store().update_terms(loan_id, replace(loan, annual_rate=benchmark + spread))
        return jsonify({**_snapshot_meta(snapshot), "schedule": output_to_dict(snapshot.output)}), 201

    return app


if __name__ == "__main__":
    logging.basicConfig(level=os.environ.get("EMI_CALC_LOG_LEVEL", "INFO").upper())
    create_app().run(host="0.0.0.0", port=int(os.environ.get("PORT", DEFAULT_PORT)))
