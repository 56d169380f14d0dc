"""
Tests for previous pump reports, the returns screen and customer reminders
"""

import pytest

@pytest.fixture
def returns_setup(client, api):
    """
    A customer who received R1 and R2 on a first order, then N1 on a second.
    At the second delivery the driver collected R1 and left R2 behind.
    """
    setup = api.pharmacy_with_employee()
    headers = setup["employee_headers"]
    customer = api.add_customer(headers)
    r1 = api.add_pump(headers, "R1")
    r2 = api.add_pump(headers, "R2")
    n1 = api.add_pump(headers, "N1")
    driver = api.connected_driver(setup["pharmacy_pin"])

    first = api.create_order(headers, customer["id"], [r1["id"], r2["id"]]).json()["order"]
    api.run_to_delivered(driver["headers"], first["id"])

    second = api.create_order(headers, customer["id"], [n1["id"]]).json()["order"]
    delivered = api.run_to_delivered(driver["headers"], second["id"], previous_pumps=[
        {"pump_number": "r1", "returned": True},
        {"pump_number": "R2", "returned": False, "reason": "Customer still using it"},
    ])

    return {
        **setup,
        "customer": customer,
        "driver": driver,
        "pumps": {"R1": r1, "R2": r2, "N1": n1},
        "first": first,
        "second": second,
        "delivered": delivered,
    }

class TestPreviousPumpReports:
    """Test cases for pumps the customer already had"""

    def test_new_order_lists_previous_pumps(self, returns_setup):
        assert returns_setup["second"]["customer_previous_pumps"] == ["R1", "R2"]
        assert returns_setup["first"]["customer_previous_pumps"] == []

    def test_delivery_records_driver_report(self, returns_setup):
        previous = {p["pump_number"]: p for p in returns_setup["delivered"]["previous_pumps"]}

        assert previous["R1"]["returned"] is True
        assert previous["R1"]["reason"] is None
        assert previous["R2"]["returned"] is False
        assert previous["R2"]["reason"] == "Customer still using it"
        assert not any(p["returned_to_pharmacy"] for p in previous.values())

    def test_unknown_previous_pump_rejected(self, client, api):
        setup = api.pharmacy_with_employee()
        headers = setup["employee_headers"]
        customer = api.add_customer(headers)
        pump = api.add_pump(headers, "U1")
        driver = api.connected_driver(setup["pharmacy_pin"])
        order = api.create_order(headers, customer["id"], [pump["id"]]).json()["order"]
        for step in ("accept", "depart"):
            client.post(f"/api/v1/driver/orders/{order['id']}/{step}", headers=driver["headers"])
        api.pickup(driver["headers"], order["id"])

        response = api.deliver(driver["headers"], order["id"], previous_pumps=[
            {"pump_number": "ZZ1", "returned": True},
        ])
        assert response.status_code == 400

        current = client.get(f"/api/v1/orders/{order['id']}", headers=headers).json()
        assert current["status"] == "ON_WAY_TO_CUSTOMER"

    def test_previous_pumps_endpoint(self, client, returns_setup):
        headers = returns_setup["employee_headers"]
        customer_id = returns_setup["customer"]["id"]

        response = client.get(f"/api/v1/customers/{customer_id}/previous-pumps", headers=headers)
        assert response.json() == ["R1", "R2", "N1"]

        assert client.get("/api/v1/customers/9999/previous-pumps", headers=headers).status_code == 404

class TestReturnsList:
    """Test cases for the returns screen"""

    def test_counts_and_filters(self, client, returns_setup):
        headers = returns_setup["employee_headers"]
        second_id = returns_setup["second"]["id"]

        data = client.get("/api/v1/returns/", headers=headers).json()
        assert data["counts"] == {"all": 1, "pending": 1, "returned": 0}
        assert [o["id"] for o in data["orders"]] == [second_id]

        pending = client.get("/api/v1/returns/?filter=pending", headers=headers).json()
        assert [o["id"] for o in pending["orders"]] == [second_id]

        returned = client.get("/api/v1/returns/?filter=returned", headers=headers).json()
        assert returned["orders"] == []

    def test_left_behind_pump_keeps_order_pending(self, client, returns_setup):
        """R2 was reported but stayed with the customer, so the order is not fully returned"""
        headers = returns_setup["employee_headers"]
        client.post(
            f"/api/v1/returns/{returns_setup['second']['id']}/pumps/R1/confirm", headers=headers
        )

        data = client.get("/api/v1/returns/", headers=headers).json()
        assert data["counts"] == {"all": 1, "pending": 1, "returned": 0}
        pending = client.get("/api/v1/returns/?filter=pending", headers=headers).json()
        assert [o["id"] for o in pending["orders"]] == [returns_setup["second"]["id"]]

    def test_all_reported_pumps_confirmed(self, client, api):
        setup = api.pharmacy_with_employee()
        headers = setup["employee_headers"]
        customer = api.add_customer(headers)
        old = api.add_pump(headers, "K1")
        new = api.add_pump(headers, "K2")
        driver = api.connected_driver(setup["pharmacy_pin"])

        first = api.create_order(headers, customer["id"], [old["id"]]).json()["order"]
        api.run_to_delivered(driver["headers"], first["id"])
        second = api.create_order(headers, customer["id"], [new["id"]]).json()["order"]
        api.run_to_delivered(driver["headers"], second["id"], previous_pumps=[
            {"pump_number": "K1", "returned": True},
        ])

        response = client.post(f"/api/v1/returns/{second['id']}/pumps/K1/confirm", headers=headers)
        assert response.status_code == 200

        data = client.get("/api/v1/returns/", headers=headers).json()
        assert data["counts"] == {"all": 1, "pending": 0, "returned": 1}
        returned = client.get("/api/v1/returns/?filter=returned", headers=headers).json()
        assert [o["id"] for o in returned["orders"]] == [second["id"]]

    def test_search_matches_previous_pump_numbers(self, client, returns_setup):
        headers = returns_setup["employee_headers"]

        found = client.get("/api/v1/returns/?search=pump%23r2", headers=headers).json()
        assert len(found["orders"]) == 1

        missing = client.get("/api/v1/returns/?search=ZZ", headers=headers).json()
        assert missing["orders"] == []
        assert missing["counts"]["all"] == 1

    def test_unknown_filter(self, client, returns_setup):
        response = client.get("/api/v1/returns/?filter=lost", headers=returns_setup["employee_headers"])
        assert response.status_code == 400

    def test_other_pharmacy_sees_nothing(self, client, api, returns_setup):
        other = api.pharmacy_with_employee(name="Other", license_code="LIC-200")
        data = client.get("/api/v1/returns/", headers=other["employee_headers"]).json()
        assert data["orders"] == []
        assert data["counts"] == {"all": 0, "pending": 0, "returned": 0}

class TestConfirmReturn:
    """Test cases for confirming a pump back at the pharmacy"""

    def _confirm(self, client, setup, pump_number):
        return client.post(
            f"/api/v1/returns/{setup['second']['id']}/pumps/{pump_number}/confirm",
            headers=setup["employee_headers"],
        )

    def test_confirm_sends_pump_to_maintenance(self, client, api, returns_setup):
        headers = returns_setup["employee_headers"]
        response = self._confirm(client, returns_setup, "r1")

        assert response.status_code == 200
        previous = {p["pump_number"]: p for p in response.json()["previous_pumps"]}
        assert previous["R1"]["returned_to_pharmacy"] is True
        assert previous["R1"]["returned_to_pharmacy_at"] is not None

        pump = api.pump(headers, returns_setup["pumps"]["R1"]["id"])
        assert pump["status"] == "IN_MAINTENANCE"
        assert pump["maintenance_due"] is True
        assert pump["maintenance_due_at"] is not None
        assert pump["maintenance_status"] == {"cleaned": False, "calibrated": False, "inspected": False}

        movements = client.get(
            f"/api/v1/pumps/movements?pump_id={returns_setup['pumps']['R1']['id']}", headers=headers
        ).json()
        assert movements[0]["action"] == "RETURNED"
        assert movements[0]["role"] == "EMPLOYEE"
        assert movements[0]["order_id"] == returns_setup["second"]["id"]

        data = client.get("/api/v1/returns/", headers=headers).json()
        assert data["counts"] == {"all": 1, "pending": 1, "returned": 0}

        due = client.get("/api/v1/pumps/maintenance", headers=headers).json()
        assert [p["pump_number"] for p in due] == ["R1"]

    def test_confirm_twice_rejected(self, client, returns_setup):
        assert self._confirm(client, returns_setup, "R1").status_code == 200
        assert self._confirm(client, returns_setup, "R1").status_code == 400

    def test_confirm_unknown_pump(self, client, returns_setup):
        assert self._confirm(client, returns_setup, "N1").status_code == 404

    def test_pump_left_with_customer_cannot_be_confirmed(self, client, api, returns_setup):
        response = self._confirm(client, returns_setup, "R2")

        assert response.status_code == 400
        pump = api.pump(returns_setup["employee_headers"], returns_setup["pumps"]["R2"]["id"])
        assert pump["status"] == "DELIVERED"
        assert pump["maintenance_due"] is False

    def test_pump_on_active_order_cannot_be_confirmed(self, client, api):
        """P1 is listed as a previous pump of order B while order A still holds it"""
        setup = api.pharmacy_with_employee()
        headers = setup["employee_headers"]
        customer = api.add_customer(headers)
        p1 = api.add_pump(headers, "P1")
        p2 = api.add_pump(headers, "P2")

        api.create_order(headers, customer["id"], [p1["id"]])
        order_b = api.create_order(headers, customer["id"], [p2["id"]]).json()["order"]
        assert order_b["customer_previous_pumps"] == ["P1"]

        response = client.post(f"/api/v1/returns/{order_b['id']}/pumps/P1/confirm", headers=headers)

        assert response.status_code == 400
        pump = api.pump(headers, p1["id"])
        assert pump["status"] == "ASSIGNED"
        assert pump["maintenance_due"] is False

    def test_driver_cannot_confirm(self, client, returns_setup):
        response = client.post(
            f"/api/v1/returns/{returns_setup['second']['id']}/pumps/R1/confirm",
            headers=returns_setup["driver"]["headers"],
        )
        assert response.status_code == 403

class TestCustomerReturnTracking:
    """Test cases for the customer pump overview and return reminders"""

    def test_pump_overview(self, client, api, returns_setup):
        headers = returns_setup["employee_headers"]
        idle = api.add_customer(headers, name="Zed Idle")

        overview = client.get("/api/v1/customers/pumps", headers=headers).json()
        by_id = {entry["customer_id"]: entry for entry in overview}

        assert by_id[returns_setup["customer"]["id"]]["pumps"] == ["R1", "R2", "N1"]
        assert by_id[idle["id"]]["pumps"] == []
        assert by_id[idle["id"]]["customer_name"] == "ZED IDLE"

    def test_reminder_saved_and_copied_to_new_orders(self, client, api, returns_setup):
        headers = returns_setup["employee_headers"]
        customer_id = returns_setup["customer"]["id"]

        response = client.put(
            f"/api/v1/customers/{customer_id}/return-reminder",
            json={"note": "  Ask for R2 back  "},
            headers=headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["return_reminder_note"] == "Ask for R2 back"
        assert data["return_reminder_by"] == "ANA LOPEZ"
        assert data["return_reminder_at"] is not None

        pump = api.add_pump(headers, "N2")
        order = api.create_order(headers, customer_id, [pump["id"]]).json()["order"]
        assert order["return_reminder_note"] == "Ask for R2 back"

    def test_blank_reminder_clears_note(self, client, returns_setup):
        headers = returns_setup["employee_headers"]
        customer_id = returns_setup["customer"]["id"]
        url = f"/api/v1/customers/{customer_id}/return-reminder"

        client.put(url, json={"note": "Call first"}, headers=headers)
        data = client.put(url, json={"note": "   "}, headers=headers).json()

        assert data["return_reminder_note"] is None
        assert data["return_reminder_at"] is None
        assert data["return_reminder_by"] is None
