# tests/test_api.py
"""HTTP layer: routing, caller identity, role checks and error kind → status mapping."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import asyncio
import pytest
from decimal import Decimal
from unittest.mock import patch
from fastapi.testclient import TestClient
from parkflow.database import get_db
from parkflow import main
from parkflow.main import app
from tests.factories import ALICE, BOB, OPERATOR_ID

USER = {"X-User-Id": str(ALICE)}
OTHER = {"X-User-Id": str(BOB)}
OPERATOR = {"X-User-Id": str(OPERATOR_ID), "X-User-Role": "operator"}

WINDOW = {"start_time": "2030-01-10T09:00:00", "end_time": "2030-01-10T11:00:00"}


@pytest.fixture
def client(db, seed):
    app.dependency_overrides[get_db] = lambda: db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def reserve(client, seed, label="1", headers=USER, vehicle_user=ALICE):
    return client.post("/api/v1/reservations", headers=headers, json={
        "space_id": seed.spaces[label], "vehicle_id": seed.vehicles[vehicle_user], **WINDOW,
    })


class TestErrorMapping:
    def test_missing_identity_is_401(self, client, seed):
        assert client.get("/api/v1/reservations").status_code == 401

    def test_not_found(self, client):
        response = client.get("/api/v1/reservations/9999", headers=USER)
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_invalid_window_is_400(self, client, seed):
        response = client.post("/api/v1/reservations", headers=USER, json={
            "space_id": seed.spaces["1"], "vehicle_id": seed.vehicles[ALICE],
            "start_time": WINDOW["end_time"], "end_time": WINDOW["start_time"],
        })
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_input"

    def test_mixed_offsets_are_400_not_500(self, client, seed):
        response = client.post("/api/v1/reservations", headers=USER, json={
            "space_id": seed.spaces["1"], "vehicle_id": seed.vehicles[ALICE],
            "start_time": "2030-01-10T09:00:00Z", "end_time": "2030-01-10T08:00:00",
        })
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_input"

    def test_second_reservation_is_409(self, client, seed):
        assert reserve(client, seed, "1").status_code == 201
        response = reserve(client, seed, "2")
        assert response.status_code == 409
        assert response.json()["error"] == "conflict"

    def test_terminal_state_is_409_invalid_state(self, client, seed):
        reservation_id = reserve(client, seed).json()["id"]
        client.patch(f"/api/v1/reservations/{reservation_id}/state", headers=USER, json={"state": "cancelled"})
        response = client.patch(f"/api/v1/reservations/{reservation_id}/state", headers=USER,
                                json={"state": "cancelled"})
        assert response.status_code == 409
        assert response.json()["error"] == "invalid_state"

    def test_foreign_vehicle_is_403(self, client, seed):
        response = reserve(client, seed, vehicle_user=BOB)
        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"


class TestTimeZones:
    def test_offset_is_stored_as_utc(self, client, seed):
        response = client.post("/api/v1/reservations", headers=USER, json={
            "space_id": seed.spaces["1"], "vehicle_id": seed.vehicles[ALICE],
            "start_time": "2030-01-10T09:00:00-05:00", "end_time": "2030-01-10T11:00:00-05:00",
        })
        assert response.status_code == 201
        assert response.json()["start_time"] == "2030-01-10T14:00:00"
        assert response.json()["end_time"] == "2030-01-10T16:00:00"

    def test_mixed_offsets_with_valid_window(self, client, seed):
        response = client.post("/api/v1/reservations", headers=USER, json={
            "space_id": seed.spaces["1"], "vehicle_id": seed.vehicles[ALICE],
            "start_time": "2030-01-10T09:00:00Z", "end_time": "2030-01-10T11:00:00",
        })
        assert response.status_code == 201
        assert response.json()["start_time"] == "2030-01-10T09:00:00"

    def test_availability_compares_in_utc(self, client, seed):
        assert reserve(client, seed, "1").status_code == 201
        url = "/api/v1/reservations/availability"
        inside = client.get(url, headers=USER, params={
            "space_id": seed.spaces["1"],
            "start_time": "2030-01-10T05:00:00-05:00", "end_time": "2030-01-10T06:00:00-05:00",
        }).json()
        assert inside["available"] is False
        later = client.get(url, headers=USER, params={
            "space_id": seed.spaces["1"],
            "start_time": "2030-01-10T09:00:00-05:00", "end_time": "2030-01-10T10:00:00-05:00",
        }).json()
        assert later["available"] is True


class TestRoleChecks:
    def test_other_user_cannot_read_reservation(self, client, seed):
        reservation_id = reserve(client, seed).json()["id"]
        assert client.get(f"/api/v1/reservations/{reservation_id}", headers=OTHER).status_code == 403
        assert client.get(f"/api/v1/reservations/{reservation_id}", headers=OPERATOR).status_code == 200

    def test_only_operators_confirm(self, client, seed):
        reservation_id = reserve(client, seed).json()["id"]
        url = f"/api/v1/reservations/{reservation_id}/state"
        assert client.patch(url, headers=USER, json={"state": "confirmed"}).status_code == 403
        response = client.patch(url, headers=OPERATOR, json={"state": "confirmed"})
        assert response.status_code == 200
        assert response.json()["state"] == "confirmed"

    def test_only_operators_manage_tariffs(self, client, seed):
        url = f"/api/v1/lots/{seed.lot_id}/tariffs"
        assert client.post(url, headers=USER, json={"tariff_type": "week", "amount": "80"}).status_code == 403
        assert client.post(url, headers=OPERATOR, json={"tariff_type": "week", "amount": "80"}).status_code == 201
        assert len(client.get(url, headers=USER).json()) == 3


class TestLifecycleOverHttp:
    def test_reserve_check_in_exit_settle_receipt(self, client, seed):
        reservation = reserve(client, seed, "7").json()
        assert client.get(f"/api/v1/spaces/{seed.spaces['7']}", headers=USER).json()["state"] == "reserved"

        occupancy = client.post("/api/v1/occupancies/check-in", headers=USER, json={
            "space_id": seed.spaces["7"], "vehicle_id": seed.vehicles[ALICE], "reservation_id": reservation["id"],
        })
        assert occupancy.status_code == 201
        occupancy_id = occupancy.json()["id"]

        quote = client.post(f"/api/v1/occupancies/{occupancy_id}/exit-request", headers=USER).json()
        assert Decimal(str(quote["amount"])) == Decimal("5")
        assert quote["already_requested"] is False

        pending = client.get(f"/api/v1/lots/{seed.lot_id}/payments/pending", headers=OPERATOR).json()
        assert [p["payment_id"] for p in pending] == [quote["payment_id"]]

        settle_url = f"/api/v1/payments/{quote['payment_id']}/settle"
        assert client.post(settle_url, headers=USER).status_code == 403
        settled = client.post(settle_url, headers=OPERATOR).json()
        assert settled["payment"]["state"] == "completed"
        assert settled["already_settled"] is False
        assert client.post(settle_url, headers=OPERATOR).json()["already_settled"] is True

        receipt = client.get(f"/api/v1/payments/{quote['payment_id']}/receipt", headers=USER).json()
        assert receipt["code"] == "B001-00000001"
        assert receipt["space_label"] == "7"
        assert client.get(f"/api/v1/spaces/{seed.spaces['7']}", headers=USER).json()["state"] == "available"
        assert client.get(f"/api/v1/reservations/{reservation['id']}", headers=USER).json()["state"] == "completed"

    def test_direct_exit_after_exit_request_is_409(self, client, seed):
        occupancy_id = client.post("/api/v1/occupancies/check-in", headers=USER, json={
            "space_id": seed.spaces["2"], "vehicle_id": seed.vehicles[ALICE],
        }).json()["id"]
        client.post(f"/api/v1/occupancies/{occupancy_id}/exit-request", headers=USER)
        response = client.post(f"/api/v1/occupancies/{occupancy_id}/direct-exit", headers=OPERATOR, json={})
        assert response.status_code == 409
        assert response.json()["error"] == "conflict"

    def test_pay_at_exit_with_cash(self, client, seed):
        occupancy_id = client.post("/api/v1/occupancies/check-in", headers=USER, json={
            "space_id": seed.spaces["2"], "vehicle_id": seed.vehicles[ALICE],
        }).json()["id"]
        response = client.post("/api/v1/payments/settle-and-pay", headers=OPERATOR, json={
            "occupancy_id": occupancy_id, "method_id": 1, "received_amount": "20",
        })
        assert response.status_code == 200
        assert Decimal(str(response.json()["change"])) == Decimal("15")

    def test_health(self, client):
        body = client.get("/api/v1/health").json()
        assert body["database"] == "ok"


class TestLifecycleHooks:
    @pytest.mark.asyncio
    async def test_shutdown_cancels_sweeper(self):
        started = asyncio.Event()

        async def sweeper():
            started.set()
            await asyncio.sleep(3600)

        with patch.object(main.settings, "SWEEPER_ENABLED", True), \
                patch("parkflow.main.run_expiration_sweeper", sweeper), \
                patch("parkflow.main.create_tables"), \
                patch("parkflow.main.seed_receipt_series"), \
                patch("parkflow.main.SessionLocal"):
            await main.startup()
            task = main._sweeper_task
            await started.wait()
            await main.shutdown()

        assert task.cancelled()
        assert main._sweeper_task is None

    @pytest.mark.asyncio
    async def test_shutdown_without_sweeper(self):
        with patch.object(main.settings, "SWEEPER_ENABLED", False), \
                patch("parkflow.main.create_tables"), \
                patch("parkflow.main.seed_receipt_series"), \
                patch("parkflow.main.SessionLocal"):
            await main.startup()
            assert main._sweeper_task is None
            await main.shutdown()
