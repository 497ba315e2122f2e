import argparse
from http import HTTPStatus
from requests import post
from datetime import datetime, timedelta, timezone

from app.src import crypto
from app.src.enums import UserRole, FuelType, VehicleStatus, OperatorStatus
from app.src.urls import (
    URL_TOKEN,
    URL_ACCOUNT,
    URL_VEHICLE,
    URL_OPERATOR,
    URL_ORDER,
    URL_ORDER_ASSIGNMENT,
    URL_PAYMENT_METHOD,
    URL_PAYMENT,
)
from app.src.db import (
    User,
    Vehicle,
    Operator,
    sessionMaker,
    engine,
    ORMbase,
)


# ----------------------------------- Project Setup -------------------------------------------#
def removeTables():
    session = sessionMaker()
    ORMbase.metadata.drop_all(engine)
    session.commit()
    print("* All tables deleted")
    session.close()


def createTables():
    session = sessionMaker()
    ORMbase.metadata.create_all(engine)
    session.commit()
    print("* All tables created")
    session.close()


def initDB():
    session = sessionMaker()
    if session.query(User).first() is not None:
        print("* Database already initialized")
        session.close()
        return

    admin = User(
        first_name="Admin",
        last_name="System",
        email_id="admin@fueltrack.com",
        password=crypto.makePassword("Admin123!"),
        phone_number="tel:+1-234-567-890",
        role=UserRole.ADMIN,
    )
    client = User(
        first_name="Juan",
        last_name="Pérez",
        email_id="cliente@fueltrack.com",
        password=crypto.makePassword("Cliente123!"),
        phone_number="tel:+1-234-567-891",
        role=UserRole.CLIENT,
    )
    provider = User(
        first_name="María",
        last_name="García",
        email_id="proveedor@fueltrack.com",
        password=crypto.makePassword("Proveedor123!"),
        phone_number="tel:+1-234-567-892",
        role=UserRole.PROVIDER,
    )
    session.add_all([admin, client, provider])
    session.flush()

    vehicles = [
        Vehicle(
            license_plate="ABC-123",
            brand="Mercedes",
            model="Actros",
            year=2022,
            capacity=10000,
            status=VehicleStatus.AVAILABLE,
        ),
        Vehicle(
            license_plate="DEF-456",
            brand="Volvo",
            model="FH",
            year=2021,
            capacity=15000,
            status=VehicleStatus.AVAILABLE,
        ),
    ]
    session.add_all(vehicles)
    session.flush()

    currentTime = datetime.now(timezone.utc)
    operators = [
        Operator(
            first_name="Carlos",
            last_name="Rodríguez",
            license_number="LIC123456",
            license_expiry_date=currentTime + timedelta(days=2 * 365),
            phone_number="tel:+1-234-567-893",
            status=OperatorStatus.AVAILABLE,
        ),
        Operator(
            first_name="Ana",
            last_name="López",
            license_number="LIC789012",
            license_expiry_date=currentTime + timedelta(days=3 * 365),
            phone_number="tel:+1-234-567-894",
            status=OperatorStatus.AVAILABLE,
        ),
    ]
    session.add_all(operators)
    session.flush()

    session.commit()
    print("* Initialization completed")
    session.close()


def POST(URL: str, header: dict = {}, status_code: int = HTTPStatus.CREATED, **kwargs):
    response = post(URL, headers=header, **kwargs)
    assert response.status_code == status_code, response.text
    return response


def bearerHeader(response) -> dict:
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def testDB():
    # Base URL
    BASE_URL = "http://127.0.0.1:8080"

    # Create tokens
    adminToken = POST(
        (BASE_URL + "/public" + URL_TOKEN),
        data={"email_id": "admin@fueltrack.com", "password": "Admin123!"},
    )
    adminHeader = bearerHeader(adminToken)
    providerToken = POST(
        (BASE_URL + "/public" + URL_TOKEN),
        data={"email_id": "proveedor@fueltrack.com", "password": "Proveedor123!"},
    )
    providerHeader = bearerHeader(providerToken)
    print("* Created tokens for admin and provider")

    # Create client account
    clientData = {
        "first_name": "Test",
        "last_name": "Client",
        "email_id": "test.client@fueltrack.com",
        "password": "Password123!",
    }
    POST((BASE_URL + "/public" + URL_ACCOUNT), data=clientData)
    clientToken = POST(
        (BASE_URL + "/public" + URL_TOKEN),
        data={"email_id": clientData["email_id"], "password": clientData["password"]},
    )
    clientHeader = bearerHeader(clientToken)
    print("* Created client account")

    # Create fleet
    vehicleData = {
        "license_plate": "GHI-789",
        "brand": "Scania",
        "model": "R 450",
        "year": 2023,
        "capacity": "20000.00",
    }
    vehicle = POST(
        (BASE_URL + "/admin" + URL_VEHICLE), header=adminHeader, data=vehicleData
    )
    operatorData = {
        "first_name": "Luis",
        "last_name": "Martínez",
        "license_number": "LIC345678",
        "license_expiry_date": (
            datetime.now(timezone.utc) + timedelta(days=365)
        ).isoformat(),
    }
    operator = POST(
        (BASE_URL + "/admin" + URL_OPERATOR), header=adminHeader, data=operatorData
    )
    print("* Created vehicle and operator")

    # Place an order
    orderData = {
        "fuel_type": FuelType.DIESEL,
        "quantity": "500.00",
        "price_per_liter": "1.45",
        "delivery_address": "Av. Principal 123",
    }
    order = POST(
        (BASE_URL + "/client" + URL_ORDER), header=clientHeader, data=orderData
    )
    print("* Placed order", order.json()["order_number"])

    # Assign the order
    assignmentData = {
        "id": order.json()["id"],
        "vehicle_id": vehicle.json()["id"],
        "operator_id": operator.json()["id"],
    }
    POST(
        (BASE_URL + "/provider" + URL_ORDER_ASSIGNMENT),
        header=providerHeader,
        data=assignmentData,
        status_code=HTTPStatus.OK,
    )
    print("* Assigned order")

    # Pay the order
    cardData = {
        "card_holder_name": "Test Client",
        "card_number": "4111111111111111",
        "card_type": "VISA",
        "expiry_date": (datetime.now(timezone.utc) + timedelta(days=730)).isoformat(),
    }
    card = POST(
        (BASE_URL + "/client" + URL_PAYMENT_METHOD), header=clientHeader, data=cardData
    )
    paymentData = {
        "order_id": order.json()["id"],
        "payment_method_id": card.json()["id"],
    }
    POST((BASE_URL + "/client" + URL_PAYMENT), header=clientHeader, data=paymentData)
    print("* Created payment")


# Setup database
if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    # remove tables
    parser.add_argument("-rm", action="store_true", help="remove tables")
    parser.add_argument("-cr", action="store_true", help="create tables")
    parser.add_argument("-init", action="store_true", help="initialize DB")
    parser.add_argument("-test", action="store_true", help="add test data")
    args = parser.parse_args()

    if args.cr:
        createTables()
    if args.init:
        initDB()
    if args.test:
        testDB()
    if args.rm:
        removeTables()
