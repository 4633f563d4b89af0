"""
Tests for the JSON API, backed by a temporary SQLite database.
"""

from __future__ import annotations

import pytest

from emi_calc_web.app import create_app
from emi_calc_web.snapshot_store import SnapshotStore

LOAN = {
    "principal": "100000",
    "annual_rate": "12",
    "tenure_months": 12,
    "start_date": "2024-01-05",
    "compounding": "MONTHLY",
}


@pytest.fixture
def client(tmp_path):
    store = SnapshotStore(f"sqlite:///{tmp_path / 'snapshots.sqlite3'}")
    app = create_app(store)
    app.config["TESTING"] = True
    return app.test_client()


@pytest.fixture
def loan_id(client):
    response = client.post("/api/loans", json=LOAN)
    assert response.status_code == 201
    return response.get_json()["loan_id"]


class TestScheduleEndpoint:
    def test_computes_schedule(self, client):
        response = client.post("/api/schedule", json=LOAN)
        data = response.get_json()

        assert response.status_code == 200
        assert data["summary"]["initial_emi"] == pytest.approx(8884.88, abs=0.01)
        assert len(data["schedule"]["payments"]) == 12

    def test_charges_raise_apr(self, client):
        plain = client.post("/api/schedule", json=LOAN).get_json()["summary"]["apr"]
        charged = client.post(
            "/api/schedule", json={**LOAN, "charges": [{"charge_type": "processing", "amount": "1200"}]}
        ).get_json()["summary"]["apr"]

        assert charged > plain

    @pytest.mark.parametrize(
        "body",
        [
            {**LOAN, "principal": "-1"},
            {**LOAN, "start_date": "never"},
            {"annual_rate": "12"},
            {**LOAN, "charges": [{"amount": "abc"}]},
        ],
    )
    def test_bad_terms_are_400(self, client, body):
        response = client.post("/api/schedule", json=body)

        assert response.status_code == 400
        assert "error" in response.get_json()

    def test_non_json_body_is_400(self, client):
        response = client.post("/api/schedule", data="principal=1", content_type="text/plain")
        assert response.status_code == 400


class TestLoanLifecycle:
    def test_initial_snapshot(self, client, loan_id):
        data = client.get(f"/api/loans/{loan_id}/snapshots").get_json()

        assert [s["version"] for s in data["snapshots"]] == [1]
        assert data["snapshots"][0]["memo"] == "Initial repayment schedule"

    def test_get_snapshot(self, client, loan_id):
        data = client.get(f"/api/loans/{loan_id}/snapshots/1").get_json()

        assert data["version"] == 1
        assert len(data["schedule"]["payments"]) == 12

    def test_modify(self, client, loan_id):
        response = client.post(
            f"/api/loans/{loan_id}/modify",
            json={"cutoff_date": "2024-06-05", "terms": {"annual_rate": "15"}},
        )
        data = response.get_json()

        assert response.status_code == 201
        assert data["version"] == 2
        assert data["memo"] == "Loan modified: annualRate changed from 12 to 15"
        assert data["schedule"]["payments"][5]["payment_type"] == "PAID"

        stored = client.get(f"/api/loans/{loan_id}/snapshots/2").get_json()
        assert stored["schedule"]["payments"][6]["current_rate"] == "15"

    def test_rate_reset(self, client, loan_id):
        response = client.post(
            f"/api/loans/{loan_id}/rate-reset",
            json={"benchmark_rate": "10", "spread": "4", "reset_date": "2024-06-10"},
        )
        data = response.get_json()

        assert response.status_code == 201
        assert data["memo"] == "Rate reset from 12.0000% to 14.0000%"
        assert data["schedule"]["payments"][0]["payment_date"] == "2024-07-01"

        versions = client.get(f"/api/loans/{loan_id}/snapshots").get_json()["snapshots"]
        assert [s["version"] for s in versions] == [1, 2]

    def test_modify_requires_cutoff(self, client, loan_id):
        response = client.post(f"/api/loans/{loan_id}/modify", json={"terms": {"annual_rate": "15"}})
        assert response.status_code == 400


class TestNotFound:
    def test_unknown_loan(self, client):
        assert client.get("/api/loans/nope/snapshots").status_code == 404

    def test_unknown_version(self, client, loan_id):
        assert client.get(f"/api/loans/{loan_id}/snapshots/9").status_code == 404

    def test_modify_unknown_version(self, client, loan_id):
        response = client.post(
            f"/api/loans/{loan_id}/modify", json={"cutoff_date": "2024-06-05", "version": 4}
        )
        assert response.status_code == 404

    def test_rate_reset_unknown_loan(self, client):
        response = client.post(
            "/api/loans/nope/rate-reset",
            json={"benchmark_rate": "10", "spread": "4", "reset_date": "2024-06-10"},
        )
        assert response.status_code == 404
