from decimal import Decimal

from app.src.enums import VehicleStatus, OperatorStatus
from app.src.urls import URL_VEHICLE, URL_OPERATOR

VEHICLE = {
    "license_plate": "GHI-789",
    "brand": "Scania",
    "model": "R 450",
    "year": 2023,
    "capacity": "20000.00",
}


def test_create_vehicle(client, adminHeader):
    response = client.post("/admin" + URL_VEHICLE, headers=adminHeader, data=VEHICLE)
    assert response.status_code == 201, response.text
    data = response.json()
    assert data["status"] == VehicleStatus.AVAILABLE
    assert Decimal(data["capacity"]) == Decimal("20000.00")


def test_duplicate_license_plate_fails(client, adminHeader):
    client.post("/admin" + URL_VEHICLE, headers=adminHeader, data=VEHICLE)
    response = client.post("/admin" + URL_VEHICLE, headers=adminHeader, data=VEHICLE)
    assert response.status_code == 409


def test_invalid_license_plate_is_rejected(client, adminHeader):
    data = dict(VEHICLE, license_plate="abc 123")
    response = client.post("/admin" + URL_VEHICLE, headers=adminHeader, data=data)
    assert response.status_code == 422


def test_provider_cannot_create_vehicle(client, providerHeader):
    response = client.post("/provider" + URL_VEHICLE, headers=providerHeader, data=VEHICLE)
    assert response.status_code == 405


def test_provider_updates_vehicle_location(client, providerHeader, fleet):
    vehicleID = fleet["vehicles"][0]
    response = client.patch(
        "/provider" + URL_VEHICLE,
        headers=providerHeader,
        data={
            "id": vehicleID,
            "status": VehicleStatus.MAINTENANCE,
            "current_latitude": 8.7405,
            "current_longitude": 76.7230,
        },
    )
    assert response.status_code == 200, response.text
    assert response.json()["status"] == VehicleStatus.MAINTENANCE
    assert response.json()["current_latitude"] == 8.7405


def test_provider_lists_available_vehicles(client, providerHeader, fleet):
    client.patch(
        "/provider" + URL_VEHICLE,
        headers=providerHeader,
        data={"id": fleet["vehicles"][0], "status": VehicleStatus.OUT_OF_SERVICE},
    )
    response = client.get(
        "/provider" + URL_VEHICLE,
        headers=providerHeader,
        params={"status": VehicleStatus.AVAILABLE},
    )
    assert [vehicle["id"] for vehicle in response.json()] == [fleet["vehicles"][1]]


def test_update_unknown_vehicle(client, adminHeader):
    response = client.patch(
        "/admin" + URL_VEHICLE, headers=adminHeader, data={"id": 9999, "brand": "MAN"}
    )
    assert response.status_code == 404


def test_create_operator(client, adminHeader):
    response = client.post(
        "/admin" + URL_OPERATOR,
        headers=adminHeader,
        data={
            "first_name": "Luis",
            "last_name": "Martinez",
            "license_number": "LIC345678",
            "license_expiry_date": "2030-01-01T00:00:00+00:00",
        },
    )
    assert response.status_code == 201, response.text
    assert response.json()["status"] == OperatorStatus.AVAILABLE


def test_provider_sets_operator_off_duty(client, providerHeader, fleet):
    operatorID = fleet["operators"][0]
    response = client.patch(
        "/provider" + URL_OPERATOR,
        headers=providerHeader,
        data={"id": operatorID, "status": OperatorStatus.OFF_DUTY},
    )
    assert response.status_code == 200
    assert response.json()["status"] == OperatorStatus.OFF_DUTY


def test_off_duty_operator_cannot_be_assigned(
    client, providerHeader, fleet, placeOrder, assign
):
    operatorID = fleet["operators"][0]
    client.patch(
        "/provider" + URL_OPERATOR,
        headers=providerHeader,
        data={"id": operatorID, "status": OperatorStatus.OFF_DUTY},
    )
    order = placeOrder()
    response = assign(order["id"], fleet["vehicles"][0], operatorID)
    assert response.status_code == 412


def test_vehicle_cannot_be_set_in_use_by_hand(client, adminHeader, providerHeader, fleet):
    response = client.patch(
        "/provider" + URL_VEHICLE,
        headers=providerHeader,
        data={"id": fleet["vehicles"][0], "status": VehicleStatus.IN_USE},
    )
    assert response.status_code == 406
    assert response.json()["detail"] == (
        "The status cannot be changed from AVAILABLE to IN_USE"
    )

    data = dict(VEHICLE, status=VehicleStatus.IN_USE)
    response = client.post("/admin" + URL_VEHICLE, headers=adminHeader, data=data)
    assert response.status_code == 406
    assert response.headers["X-Error"] == "InvalidValue"


def test_operator_cannot_be_set_on_delivery_by_hand(
    client, adminHeader, providerHeader, fleet
):
    response = client.patch(
        "/provider" + URL_OPERATOR,
        headers=providerHeader,
        data={"id": fleet["operators"][0], "status": OperatorStatus.ON_DELIVERY},
    )
    assert response.status_code == 406
    assert response.headers["X-Error"] == "InvalidStateTransition"

    response = client.post(
        "/admin" + URL_OPERATOR,
        headers=adminHeader,
        data={
            "first_name": "Luis",
            "last_name": "Martinez",
            "license_number": "LIC345678",
            "license_expiry_date": "2030-01-01T00:00:00+00:00",
            "status": OperatorStatus.ON_DELIVERY,
        },
    )
    assert response.status_code == 406
    assert response.headers["X-Error"] == "InvalidValue"
