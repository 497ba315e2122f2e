import os

os.environ["OPENOBSERVE_ENABLED"] = "false"

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.pool import StaticPool

from app.main import app
from app.api import order as order_api, payment as payment_api
from app.src import crypto
from app.src.db import ORMbase, sessionMaker, User, Vehicle, Operator
from app.src.enums import UserRole, VehicleStatus, OperatorStatus, FuelType
from app.src.urls import URL_TOKEN, URL_ORDER, URL_ORDER_ASSIGNMENT

PASSWORD = "Password123!"
EMAILS = {
    "admin": "admin@fueltrack.com",
    "client": "client@fueltrack.com",
    "other": "other@fueltrack.com",
    "provider": "provider@fueltrack.com",
}

testEngine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@event.listens_for(testEngine, "connect")
def enableForeignKeys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture(autouse=True)
def database():
    ORMbase.metadata.create_all(testEngine)
    sessionMaker.configure(bind=testEngine)
    yield
    ORMbase.metadata.drop_all(testEngine)


@pytest.fixture(autouse=True)
def noLocks(monkeypatch):
    for module in (order_api, payment_api):
        monkeypatch.setattr(module, "acquireLock", lambda tableName, pk=None: None)
        monkeypatch.setattr(module, "releaseLock", lambda lock: None)


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def accounts(database):
    password = crypto.makePassword(PASSWORD)
    roles = {
        "admin": UserRole.ADMIN,
        "client": UserRole.CLIENT,
        "other": UserRole.CLIENT,
        "provider": UserRole.PROVIDER,
    }
    with sessionMaker() as session:
        users = {
            name: User(
                first_name=name.capitalize(),
                last_name="Test",
                email_id=EMAILS[name],
                password=password,
                role=role,
            )
            for name, role in roles.items()
        }
        session.add_all(users.values())
        session.commit()
        return {name: user.id for name, user in users.items()}


def login(client: TestClient, email: str, password: str = PASSWORD) -> dict:
    response = client.post(
        "/public" + URL_TOKEN, data={"email_id": email, "password": password}
    )
    assert response.status_code == 201, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def adminHeader(client, accounts):
    return login(client, EMAILS["admin"])


@pytest.fixture
def clientHeader(client, accounts):
    return login(client, EMAILS["client"])


@pytest.fixture
def otherHeader(client, accounts):
    return login(client, EMAILS["other"])


@pytest.fixture
def providerHeader(client, accounts):
    return login(client, EMAILS["provider"])


@pytest.fixture
def fleet(database):
    """Two available vehicles and two available operators."""
    licenceExpiry = datetime.now(timezone.utc) + timedelta(days=365)
    with sessionMaker() as session:
        vehicles = [
            Vehicle(
                license_plate="ABC-123",
                brand="Mercedes",
                model="Actros",
                year=2022,
                capacity=Decimal("10000.00"),
                status=VehicleStatus.AVAILABLE,
            ),
            Vehicle(
                license_plate="DEF-456",
                brand="Volvo",
                model="FH",
                year=2021,
                capacity=Decimal("15000.00"),
                status=VehicleStatus.AVAILABLE,
            ),
        ]
        operators = [
            Operator(
                first_name="Carlos",
                last_name="Rodriguez",
                license_number="LIC123456",
                license_expiry_date=licenceExpiry,
                status=OperatorStatus.AVAILABLE,
            ),
            Operator(
                first_name="Ana",
                last_name="Lopez",
                license_number="LIC789012",
                license_expiry_date=licenceExpiry,
                status=OperatorStatus.AVAILABLE,
            ),
        ]
        session.add_all(vehicles + operators)
        session.commit()
        return {
            "vehicles": [vehicle.id for vehicle in vehicles],
            "operators": [operator.id for operator in operators],
        }


@pytest.fixture
def placeOrder(client, clientHeader):
    def place(header: dict = None, quantity="100.00", price_per_liter="1.50") -> dict:
        response = client.post(
            "/client" + URL_ORDER,
            headers=header or clientHeader,
            data={
                "fuel_type": FuelType.DIESEL,
                "quantity": quantity,
                "price_per_liter": price_per_liter,
                "delivery_address": "Av. Principal 123",
            },
        )
        assert response.status_code == 201, response.text
        return response.json()

    return place


@pytest.fixture
def assign(client, providerHeader):
    def assignOrder(order_id: int, vehicle_id: int, operator_id: int):
        return client.post(
            "/provider" + URL_ORDER_ASSIGNMENT,
            headers=providerHeader,
            data={
                "id": order_id,
                "vehicle_id": vehicle_id,
                "operator_id": operator_id,
            },
        )

    return assignOrder
