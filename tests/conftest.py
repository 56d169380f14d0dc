"""
Shared test fixtures: in-memory database, temporary storage and API helpers
"""

import base64
import os
import tempfile
from io import BytesIO

# Must be set before the application modules read their settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["STORAGE_DIR"] = tempfile.mkdtemp(prefix="pumpdispatch-storage-")
os.environ["ADMIN_PIN"] = "1844"

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pumpdispatch.database import Base, get_db
from pumpdispatch.services.email_service import get_email_service
from pumpdispatch.services.storage_service import LocalStorageService, get_storage
from main import app

ADMIN_PIN = "1844"

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def make_signature(color="black") -> str:
    """Small PNG encoded as a data URL, like the signature pad produces"""
    image = Image.new("RGB", (40, 20), color)
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")


class FakeEmailService:
    """Records outgoing emails instead of calling the email API"""

    def __init__(self):
        self.sent = []
        self.succeed = True

    def send(self, to, subject, html, text=None):
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text})
        return self.succeed


class Api:
    """Shortcuts for setting up pharmacies, staff, drivers and orders through the API"""

    def __init__(self, client: TestClient):
        self.client = client

    def headers(self, pin: str) -> dict:
        response = self.client.post("/api/v1/auth/login", json={"pin": pin})
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['access_token']}"}

    def register_pharmacy(self, name="Central Pharmacy", license_code="LIC-100") -> dict:
        response = self.client.post("/api/v1/auth/register/pharmacy", json={
            "license_code": license_code,
            "pharmacy_name": name,
            "email": "central@example.com",
            "country": "USA",
            "state": "FL",
            "city": "Miami",
            "address": "100 Main St",
        })
        assert response.status_code == 201, response.text
        return response.json()

    def register_employee(self, pharmacy_pin: str, full_name="Ana Lopez") -> dict:
        response = self.client.post("/api/v1/auth/register/employee", json={
            "pharmacy_pin": pharmacy_pin,
            "full_name": full_name,
            "email": "ana@example.com",
            "job_title": "Technician",
        })
        assert response.status_code == 201, response.text
        return response.json()

    def register_driver(self, full_name="Carl Rivers") -> dict:
        response = self.client.post("/api/v1/auth/register/driver", json={
            "full_name": full_name,
            "email": "carl@example.com",
            "country": "USA",
            "state": "FL",
            "city": "Miami",
        })
        assert response.status_code == 201, response.text
        return response.json()

    def pharmacy_with_employee(self, name="Central Pharmacy", license_code="LIC-100") -> dict:
        pharmacy = self.register_pharmacy(name, license_code)
        employee = self.register_employee(pharmacy["pin"])
        return {
            "pharmacy": pharmacy["pharmacy"],
            "pharmacy_pin": pharmacy["pin"],
            "pharmacy_headers": self.headers(pharmacy["pin"]),
            "employee": employee["employee"],
            "employee_headers": self.headers(employee["pin"]),
        }

    def connected_driver(self, pharmacy_pin: str, full_name="Carl Rivers") -> dict:
        driver = self.register_driver(full_name)
        headers = self.headers(driver["pin"])
        response = self.client.post("/api/v1/driver/pharmacies/connect", json={"pin": pharmacy_pin}, headers=headers)
        assert response.status_code == 200, response.text
        return {"driver": driver["driver"], "headers": headers}

    def add_customer(self, headers: dict, name="John Doe") -> dict:
        response = self.client.post("/api/v1/customers/", json={
            "customer_name": name,
            "country": "USA",
            "state": "FL",
            "city": "Miami",
            "address": "22 Palm Ave",
        }, headers=headers)
        assert response.status_code == 201, response.text
        return response.json()

    def add_pump(self, headers: dict, number: str, brand="Baxter") -> dict:
        response = self.client.post("/api/v1/pumps/", json={"pump_number": number, "brand": brand}, headers=headers)
        assert response.status_code == 201, response.text
        return response.json()

    def create_order(self, headers: dict, customer_id: int, pump_ids: list):
        return self.client.post("/api/v1/orders/", json={"customer_id": customer_id, "pump_ids": pump_ids}, headers=headers)

    def pump(self, headers: dict, pump_id: int) -> dict:
        pumps = self.client.get("/api/v1/pumps/", headers=headers).json()
        return next(p for p in pumps if p["id"] == pump_id)

    def pickup(self, headers: dict, order_id: int):
        return self.client.post(f"/api/v1/driver/orders/{order_id}/pickup", json={
            "employee_signature": make_signature("blue"),
            "driver_signature": make_signature("black"),
        }, headers=headers)

    def deliver(self, headers: dict, order_id: int, previous_pumps=None, extra_headers=None):
        request_headers = dict(headers)
        request_headers.update(extra_headers or {})
        return self.client.post(f"/api/v1/driver/orders/{order_id}/deliver", json={
            "customer_signature": make_signature("green"),
            "driver_signature": make_signature("black"),
            "latitude": 25.7617,
            "longitude": -80.1918,
            "previous_pumps": previous_pumps or [],
        }, headers=request_headers)

    def run_to_delivered(self, driver_headers: dict, order_id: int, previous_pumps=None):
        for step in ("accept", "depart"):
            response = self.client.post(f"/api/v1/driver/orders/{order_id}/{step}", headers=driver_headers)
            assert response.status_code == 200, response.text
        assert self.pickup(driver_headers, order_id).status_code == 200
        response = self.deliver(driver_headers, order_id, previous_pumps)
        assert response.status_code == 200, response.text
        return response.json()


@pytest.fixture
def db_session():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def storage(tmp_path):
    return LocalStorageService(root_dir=str(tmp_path), base_url="/files")


@pytest.fixture
def email_outbox():
    return FakeEmailService()


@pytest.fixture
def client(db_session, storage, email_outbox):
    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_email_service] = lambda: email_outbox

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def api(client):
    return Api(client)
