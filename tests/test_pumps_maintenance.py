"""
Tests for pump inventory, scanner lookup and maintenance
"""

import pytest

from conftest import ADMIN_PIN
from pumpdispatch.models.order import Order
from pumpdispatch.models.pump import Pump

@pytest.fixture
def staff(api):
    return api.pharmacy_with_employee()

def _force_maintenance(db_session, pump_id, cleaned=False, calibrated=False, inspected=False):
    pump = db_session.query(Pump).filter(Pump.id == pump_id).one()
    pump.status = "IN_MAINTENANCE"
    pump.maintenance_due = True
    pump.cleaned = cleaned
    pump.calibrated = calibrated
    pump.inspected = inspected
    db_session.commit()

class TestPumpRegistration:
    """Test cases for registering and listing pumps"""

    def test_register_pump_normalises_number(self, client, api, staff):
        pump = api.add_pump(staff["employee_headers"], "  ab-12 ", brand="moog")

        assert pump["pump_number"] == "AB-12"
        assert pump["brand"] == "MOOG"
        assert pump["status"] == "AVAILABLE"
        assert pump["maintenance_due"] is False
        assert pump["maintenance_status"] == {"cleaned": False, "calibrated": False, "inspected": False}
        assert pump["created_by"] == "ANA LOPEZ"

    def test_duplicate_number_rejected_within_pharmacy(self, client, api, staff):
        api.add_pump(staff["employee_headers"], "AB-12")
        response = client.post("/api/v1/pumps/", json={"pump_number": "ab-12"}, headers=staff["employee_headers"])

        assert response.status_code == 400
        assert "already registered" in response.json()["detail"]

    def test_same_number_allowed_in_other_pharmacy(self, api, staff):
        api.add_pump(staff["employee_headers"], "AB-12")
        other = api.pharmacy_with_employee(name="Other", license_code="LIC-200")
        assert api.add_pump(other["employee_headers"], "AB-12")["pump_number"] == "AB-12"

    def test_blank_number_rejected(self, client, staff):
        response = client.post("/api/v1/pumps/", json={"pump_number": "   "}, headers=staff["employee_headers"])
        assert response.status_code == 422

    def test_selectable_list_excludes_busy_pumps(self, client, api, staff, db_session):
        headers = staff["employee_headers"]
        free = api.add_pump(headers, "P1")
        busy = api.add_pump(headers, "P2")
        due = api.add_pump(headers, "P3")
        customer = api.add_customer(headers)
        api.create_order(headers, customer["id"], [busy["id"]])
        _force_maintenance(db_session, due["id"])

        selectable = client.get("/api/v1/pumps/?selectable=true", headers=headers).json()
        assert [p["id"] for p in selectable] == [free["id"]]
        assert len(client.get("/api/v1/pumps/", headers=headers).json()) == 3

class TestScanResolve:
    """Test cases for resolving scanner input"""

    def test_exact_match_preferred_over_substring(self, client, api, staff):
        headers = staff["employee_headers"]
        api.add_pump(headers, "A100")
        exact = api.add_pump(headers, "A10")

        response = client.post("/api/v1/pumps/resolve-scan", json={"raw": "PUMP#a10"}, headers=headers)
        data = response.json()
        assert [p["id"] for p in data["resolved"]] == [exact["id"]]
        assert data["not_found"] == []

    def test_substring_match_and_batch(self, client, api, staff):
        headers = staff["employee_headers"]
        first = api.add_pump(headers, "IV-5531")
        second = api.add_pump(headers, "IV-7720")

        raw = "https://tags.example.com/scan?pump=5531\n7720;ZZ9"
        data = client.post("/api/v1/pumps/resolve-scan", json={"raw": raw}, headers=headers).json()

        assert [p["id"] for p in data["resolved"]] == [first["id"], second["id"]]
        assert data["not_found"] == ["ZZ9"]

    def test_unselectable_pumps_are_not_resolved(self, client, api, staff):
        headers = staff["employee_headers"]
        pump = api.add_pump(headers, "B1")
        customer = api.add_customer(headers)
        api.create_order(headers, customer["id"], [pump["id"]])

        data = client.post("/api/v1/pumps/resolve-scan", json={"raw": "B1"}, headers=headers).json()
        assert data["resolved"] == []
        assert data["not_found"] == ["B1"]

class TestDeletePump:
    """Test cases for deleting pumps"""

    def test_delete_free_pump(self, client, api, staff):
        headers = staff["employee_headers"]
        pump = api.add_pump(headers, "X1")

        assert client.delete(f"/api/v1/pumps/{pump['id']}", headers=headers).status_code == 200
        assert client.get("/api/v1/pumps/", headers=headers).json() == []

    def test_delete_pump_on_active_order_rejected(self, client, api, staff):
        headers = staff["employee_headers"]
        pump = api.add_pump(headers, "X1")
        customer = api.add_customer(headers)
        order = api.create_order(headers, customer["id"], [pump["id"]]).json()["order"]

        assert client.delete(f"/api/v1/pumps/{pump['id']}", headers=headers).status_code == 409

        client.post(f"/api/v1/orders/{order['id']}/cancel", headers=headers)
        assert client.delete(f"/api/v1/pumps/{pump['id']}", headers=headers).status_code == 200

        kept = client.get(f"/api/v1/orders/{order['id']}", headers=headers).json()
        assert kept["pump_numbers"] == ["X1"]
        assert kept["pump_ids"] == [None]

    def test_legacy_order_rows_follow_effective_status(self, client, api, staff, db_session):
        """A legacy status still holds the pump until a delivery time is stamped"""
        headers = staff["employee_headers"]
        pump = api.add_pump(headers, "X2")
        customer = api.add_customer(headers)
        order_id = api.create_order(headers, customer["id"], [pump["id"]]).json()["order"]["id"]

        order = db_session.query(Order).filter(Order.id == order_id).one()
        order.status = "IN_PROGRESS"
        db_session.commit()
        assert client.delete(f"/api/v1/pumps/{pump['id']}", headers=headers).status_code == 409

        order.delivered_at_iso = "2024-05-01T10:00:00.000Z"
        db_session.commit()
        assert client.delete(f"/api/v1/pumps/{pump['id']}", headers=headers).status_code == 200

    def test_movement_history_newest_first(self, client, api, staff):
        headers = staff["employee_headers"]
        pump = api.add_pump(headers, "M1")
        customer = api.add_customer(headers)
        order = api.create_order(headers, customer["id"], [pump["id"]]).json()["order"]
        driver = api.connected_driver(staff["pharmacy_pin"])
        client.post(f"/api/v1/driver/orders/{order['id']}/accept", headers=driver["headers"])
        client.post(f"/api/v1/driver/orders/{order['id']}/depart", headers=driver["headers"])
        api.pickup(driver["headers"], order["id"])

        movements = client.get(f"/api/v1/pumps/movements?pump_id={pump['id']}", headers=headers).json()
        assert [m["action"] for m in movements] == ["PICKED_UP", "ASSIGNED"]
        assert movements[0]["role"] == "DRIVER"
        assert movements[0]["performed_by_name"] == "CARL RIVERS"

class TestMaintenance:
    """Test cases for the maintenance checklist and reconciliation"""

    def test_partial_checklist_keeps_pump_in_maintenance(self, client, api, staff, db_session):
        headers = staff["employee_headers"]
        pump = api.add_pump(headers, "M1")
        _force_maintenance(db_session, pump["id"])

        response = client.put(
            f"/api/v1/pumps/{pump['id']}/maintenance",
            json={"cleaned": True, "calibrated": True, "inspected": False},
            headers=headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "IN_MAINTENANCE"
        assert data["maintenance_due"] is True
        assert data["maintenance_completed_at"] is None
        assert data["maintenance_status"] == {"cleaned": True, "calibrated": True, "inspected": False}

        due = client.get("/api/v1/pumps/maintenance", headers=headers).json()
        assert [p["id"] for p in due] == [pump["id"]]

    def test_full_checklist_releases_pump(self, client, api, staff, db_session):
        headers = staff["employee_headers"]
        pump = api.add_pump(headers, "M1")
        _force_maintenance(db_session, pump["id"])

        response = client.put(
            f"/api/v1/pumps/{pump['id']}/maintenance",
            json={"cleaned": True, "calibrated": True, "inspected": True},
            headers=headers,
        )
        data = response.json()
        assert data["status"] == "AVAILABLE"
        assert data["maintenance_due"] is False
        assert data["maintenance_completed_at"] is not None
        assert client.get("/api/v1/pumps/maintenance", headers=headers).json() == []

    def test_checklist_on_pump_not_in_maintenance(self, client, api, staff):
        headers = staff["employee_headers"]
        pump = api.add_pump(headers, "M1")
        response = client.put(
            f"/api/v1/pumps/{pump['id']}/maintenance",
            json={"cleaned": True, "calibrated": True, "inspected": True},
            headers=headers,
        )
        assert response.status_code == 400

    def test_reconcile_dry_run_then_apply(self, client, api, staff, db_session):
        headers = staff["employee_headers"]
        stuck = api.add_pump(headers, "R1")
        unfinished = api.add_pump(headers, "R2")
        _force_maintenance(db_session, stuck["id"], cleaned=True, calibrated=True, inspected=True)
        _force_maintenance(db_session, unfinished["id"], cleaned=True)
        admin_headers = api.headers(ADMIN_PIN)

        dry = client.post("/api/v1/admin/maintenance/reconcile?dry_run=true", headers=admin_headers).json()
        assert dry == {"scanned": 2, "updated": 1, "dry_run": True, "pump_ids": [stuck["id"]]}
        assert api.pump(headers, stuck["id"])["status"] == "IN_MAINTENANCE"

        applied = client.post(
            f"/api/v1/admin/maintenance/reconcile?pharmacy_id={staff['pharmacy']['id']}",
            headers=admin_headers,
        ).json()
        assert applied["updated"] == 1
        assert applied["dry_run"] is False
        assert api.pump(headers, stuck["id"])["status"] == "AVAILABLE"
        assert api.pump(headers, stuck["id"])["maintenance_due"] is False
        assert api.pump(headers, unfinished["id"])["status"] == "IN_MAINTENANCE"

    def test_reconcile_respects_limit(self, client, api, staff, db_session):
        headers = staff["employee_headers"]
        for number in ("L1", "L2", "L3"):
            pump = api.add_pump(headers, number)
            _force_maintenance(db_session, pump["id"], cleaned=True, calibrated=True, inspected=True)

        data = client.post("/api/v1/admin/maintenance/reconcile?limit=2", headers=api.headers(ADMIN_PIN)).json()
        assert data["scanned"] == 2
        assert data["updated"] == 2

    def test_reconcile_requires_admin(self, client, staff):
        response = client.post("/api/v1/admin/maintenance/reconcile", headers=staff["employee_headers"])
        assert response.status_code == 403
