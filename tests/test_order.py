from datetime import datetime, timedelta, timezone
from decimal import Decimal

from app.src.db import sessionMaker, Order, Vehicle, Operator, Notification
from app.src.enums import (
    OrderStatus,
    VehicleStatus,
    OperatorStatus,
    NotificationType,
)
from app.src.urls import URL_ORDER, URL_VEHICLE, URL_OPERATOR, URL_NOTIFICATION


def getRecord(model, id):
    with sessionMaker() as session:
        return session.query(model).filter(model.id == id).first()


def test_create_order_computes_total(placeOrder):
    order = placeOrder(quantity="100.00", price_per_liter="1.50")

    assert Decimal(order["total_amount"]) == Decimal("150.00")
    assert order["status"] == OrderStatus.PENDING
    assert order["order_number"].startswith("FT-")
    assert order["vehicle_id"] is None
    assert order["operator_id"] is None


def test_create_order_rounds_half_up(placeOrder):
    order = placeOrder(quantity="0.50", price_per_liter="1.25")
    assert Decimal(order["total_amount"]) == Decimal("0.63")


def test_create_order_rejects_non_positive_quantity(client, clientHeader):
    response = client.post(
        "/client" + URL_ORDER,
        headers=clientHeader,
        data={
            "fuel_type": 1,
            "quantity": "0",
            "price_per_liter": "1.50",
            "delivery_address": "Av. Principal 123",
        },
    )
    assert response.status_code == 422


def test_client_only_sees_own_orders(client, placeOrder, otherHeader, clientHeader):
    own = placeOrder()
    placeOrder(header=otherHeader)

    response = client.get("/client" + URL_ORDER, headers=clientHeader)
    assert response.status_code == 200
    assert [order["id"] for order in response.json()] == [own["id"]]


def test_assignment_confirms_order(placeOrder, fleet, assign):
    order = placeOrder()
    vehicleID, operatorID = fleet["vehicles"][0], fleet["operators"][0]

    response = assign(order["id"], vehicleID, operatorID)
    assert response.status_code == 200, response.text
    data = response.json()
    assert data["status"] == OrderStatus.CONFIRMED
    assert data["vehicle_id"] == vehicleID
    assert data["operator_id"] == operatorID
    assert getRecord(Vehicle, vehicleID).status == VehicleStatus.IN_USE
    assert getRecord(Operator, operatorID).status == OperatorStatus.ON_DELIVERY


def test_assignment_of_busy_vehicle_fails(placeOrder, fleet, assign):
    first = placeOrder()
    second = placeOrder()
    vehicleID = fleet["vehicles"][0]

    assert assign(first["id"], vehicleID, fleet["operators"][0]).status_code == 200
    response = assign(second["id"], vehicleID, fleet["operators"][1])
    assert response.status_code == 412
    assert response.headers["X-Error"] == "ResourceUnavailable"

    # Nothing of the failed assignment is kept
    assert getRecord(Order, second["id"]).status == OrderStatus.PENDING
    assert getRecord(Operator, fleet["operators"][1]).status == OperatorStatus.AVAILABLE


def test_assignment_of_busy_operator_fails(placeOrder, fleet, assign):
    first = placeOrder()
    second = placeOrder()
    operatorID = fleet["operators"][0]

    assert assign(first["id"], fleet["vehicles"][0], operatorID).status_code == 200
    response = assign(second["id"], fleet["vehicles"][1], operatorID)
    assert response.status_code == 412
    assert getRecord(Vehicle, fleet["vehicles"][1]).status == VehicleStatus.AVAILABLE


def test_assignment_requires_pending_order(placeOrder, fleet, assign):
    order = placeOrder()
    assert assign(order["id"], fleet["vehicles"][0], fleet["operators"][0]).status_code == 200

    response = assign(order["id"], fleet["vehicles"][1], fleet["operators"][1])
    assert response.status_code == 406
    assert response.headers["X-Error"] == "InvalidStateTransition"


def test_assignment_requires_enough_capacity(placeOrder, fleet, assign):
    order = placeOrder(quantity="12000.00")
    response = assign(order["id"], fleet["vehicles"][0], fleet["operators"][0])
    assert response.status_code == 412

    # The larger vehicle fits
    response = assign(order["id"], fleet["vehicles"][1], fleet["operators"][0])
    assert response.status_code == 200


def test_assignment_requires_valid_licence(
    client, adminHeader, placeOrder, fleet, assign
):
    response = client.post(
        "/admin" + URL_OPERATOR,
        headers=adminHeader,
        data={
            "first_name": "Pedro",
            "last_name": "Gomez",
            "license_number": "LIC000001",
            "license_expiry_date": (
                datetime.now(timezone.utc) - timedelta(days=1)
            ).isoformat(),
        },
    )
    assert response.status_code == 201, response.text
    order = placeOrder()

    response = assign(order["id"], fleet["vehicles"][0], response.json()["id"])
    assert response.status_code == 412


def test_assignment_with_unknown_vehicle(placeOrder, fleet, assign):
    order = placeOrder()
    response = assign(order["id"], 9999, fleet["operators"][0])
    assert response.status_code == 404
    assert response.headers["X-Error"] == "UnknownValue"


def test_order_lifecycle(client, providerHeader, clientHeader, placeOrder, fleet, assign):
    order = placeOrder()
    vehicleID, operatorID = fleet["vehicles"][0], fleet["operators"][0]
    assert assign(order["id"], vehicleID, operatorID).status_code == 200

    response = client.patch(
        "/provider" + URL_ORDER,
        headers=providerHeader,
        data={"id": order["id"], "status": OrderStatus.IN_TRANSIT},
    )
    assert response.status_code == 200, response.text
    assert response.json()["status"] == OrderStatus.IN_TRANSIT

    response = client.patch(
        "/provider" + URL_ORDER,
        headers=providerHeader,
        data={"id": order["id"], "status": OrderStatus.DELIVERED},
    )
    assert response.status_code == 200
    assert response.json()["status"] == OrderStatus.DELIVERED
    assert response.json()["actual_delivery_time"] is not None
    assert getRecord(Vehicle, vehicleID).status == VehicleStatus.AVAILABLE
    assert getRecord(Operator, operatorID).status == OperatorStatus.AVAILABLE

    response = client.get(
        "/client" + URL_NOTIFICATION,
        headers=clientHeader,
        params={"order_id": order["id"]},
    )
    types = [notification["type"] for notification in response.json()]
    assert types.count(NotificationType.ORDER_UPDATE) == 3
    assert types.count(NotificationType.DELIVERY_ALERT) == 1


def test_delivered_order_is_terminal(client, providerHeader, placeOrder, fleet, assign):
    order = placeOrder()
    assign(order["id"], fleet["vehicles"][0], fleet["operators"][0])
    for status in (OrderStatus.IN_TRANSIT, OrderStatus.DELIVERED):
        client.patch(
            "/provider" + URL_ORDER,
            headers=providerHeader,
            data={"id": order["id"], "status": status},
        )

    response = client.patch(
        "/provider" + URL_ORDER,
        headers=providerHeader,
        data={"id": order["id"], "status": OrderStatus.CONFIRMED},
    )
    assert response.status_code == 406
    assert "DELIVERED" in response.json()["detail"]
    assert "CONFIRMED" in response.json()["detail"]

    response = client.patch(
        "/provider" + URL_ORDER,
        headers=providerHeader,
        data={"id": order["id"], "status": OrderStatus.CANCELLED},
    )
    assert response.status_code == 406
    assert getRecord(Order, order["id"]).status == OrderStatus.DELIVERED


def test_confirmation_requires_assignment(client, providerHeader, placeOrder):
    order = placeOrder()
    response = client.patch(
        "/provider" + URL_ORDER,
        headers=providerHeader,
        data={"id": order["id"], "status": OrderStatus.CONFIRMED},
    )
    assert response.status_code == 406
    assert response.json()["detail"] == (
        "The status cannot be changed from PENDING to CONFIRMED"
    )


def test_pending_order_cannot_skip_to_transit(client, adminHeader, placeOrder):
    order = placeOrder()
    response = client.patch(
        "/admin" + URL_ORDER,
        headers=adminHeader,
        data={"id": order["id"], "status": OrderStatus.IN_TRANSIT},
    )
    assert response.status_code == 406
    assert "PENDING" in response.json()["detail"]


def test_cancel_releases_vehicle_and_operator(
    client, clientHeader, placeOrder, fleet, assign
):
    order = placeOrder()
    vehicleID, operatorID = fleet["vehicles"][0], fleet["operators"][0]
    assign(order["id"], vehicleID, operatorID)

    response = client.patch(
        "/client" + URL_ORDER, headers=clientHeader, data={"id": order["id"]}
    )
    assert response.status_code == 200
    assert response.json()["status"] == OrderStatus.CANCELLED
    assert getRecord(Vehicle, vehicleID).status == VehicleStatus.AVAILABLE
    assert getRecord(Operator, operatorID).status == OperatorStatus.AVAILABLE

    # A cancelled order stays cancelled
    response = client.patch(
        "/client" + URL_ORDER, headers=clientHeader, data={"id": order["id"]}
    )
    assert response.status_code == 406


def test_cancel_keeps_resources_taken_out_of_service(
    client, clientHeader, placeOrder, fleet, assign
):
    order = placeOrder()
    vehicleID, operatorID = fleet["vehicles"][0], fleet["operators"][0]
    assign(order["id"], vehicleID, operatorID)
    with sessionMaker() as session:
        session.query(Vehicle).filter(Vehicle.id == vehicleID).update(
            {Vehicle.status: VehicleStatus.MAINTENANCE}
        )
        session.commit()

    client.patch("/client" + URL_ORDER, headers=clientHeader, data={"id": order["id"]})
    assert getRecord(Vehicle, vehicleID).status == VehicleStatus.MAINTENANCE
    assert getRecord(Operator, operatorID).status == OperatorStatus.AVAILABLE


def test_admin_cancels_assigned_order(
    client, adminHeader, clientHeader, placeOrder, fleet, assign
):
    order = placeOrder()
    vehicleID, operatorID = fleet["vehicles"][0], fleet["operators"][0]
    assign(order["id"], vehicleID, operatorID)

    response = client.patch(
        "/admin" + URL_ORDER,
        headers=adminHeader,
        data={"id": order["id"], "status": OrderStatus.CANCELLED},
    )
    assert response.status_code == 200, response.text
    assert response.json()["status"] == OrderStatus.CANCELLED
    assert getRecord(Order, order["id"]).status == OrderStatus.CANCELLED
    assert getRecord(Vehicle, vehicleID).status == VehicleStatus.AVAILABLE
    assert getRecord(Operator, operatorID).status == OperatorStatus.AVAILABLE

    response = client.get(
        "/client" + URL_NOTIFICATION,
        headers=clientHeader,
        params={"order_id": order["id"], "type": NotificationType.ORDER_UPDATE},
    )
    assert len(response.json()) == 2


def test_assigned_vehicle_cannot_be_freed_by_hand(
    client, providerHeader, placeOrder, fleet, assign
):
    first, second = placeOrder(), placeOrder()
    vehicleID = fleet["vehicles"][0]
    assign(first["id"], vehicleID, fleet["operators"][0])

    response = client.patch(
        "/provider" + URL_VEHICLE,
        headers=providerHeader,
        data={"id": vehicleID, "status": VehicleStatus.AVAILABLE},
    )
    assert response.status_code == 406
    assert response.headers["X-Error"] == "InvalidStateTransition"
    assert getRecord(Vehicle, vehicleID).status == VehicleStatus.IN_USE

    response = assign(second["id"], vehicleID, fleet["operators"][1])
    assert response.status_code == 412
    with sessionMaker() as session:
        activeOrders = (
            session.query(Order)
            .filter(
                Order.vehicle_id == vehicleID,
                Order.status.in_([OrderStatus.CONFIRMED, OrderStatus.IN_TRANSIT]),
            )
            .count()
        )
    assert activeOrders == 1


def test_assigned_operator_cannot_be_freed_by_hand(
    client, adminHeader, placeOrder, fleet, assign
):
    order = placeOrder()
    operatorID = fleet["operators"][0]
    assign(order["id"], fleet["vehicles"][0], operatorID)

    response = client.patch(
        "/admin" + URL_OPERATOR,
        headers=adminHeader,
        data={"id": operatorID, "status": OperatorStatus.OFF_DUTY},
    )
    assert response.status_code == 406
    assert getRecord(Operator, operatorID).status == OperatorStatus.ON_DELIVERY


def test_client_cannot_cancel_foreign_order(client, otherHeader, placeOrder):
    order = placeOrder()
    response = client.patch(
        "/client" + URL_ORDER, headers=otherHeader, data={"id": order["id"]}
    )
    assert response.status_code == 403
    assert getRecord(Order, order["id"]).status == OrderStatus.PENDING


def test_admin_delete_order_cascades_payments_and_detaches_notifications(
    client, adminHeader, providerHeader, placeOrder, fleet, assign
):
    order = placeOrder()
    assign(order["id"], fleet["vehicles"][0], fleet["operators"][0])

    response = client.request(
        "DELETE", "/admin" + URL_ORDER, headers=adminHeader, data={"id": order["id"]}
    )
    assert response.status_code == 204
    assert getRecord(Order, order["id"]) is None
    assert getRecord(Vehicle, fleet["vehicles"][0]).status == VehicleStatus.AVAILABLE

    with sessionMaker() as session:
        notifications = session.query(Notification).all()
        assert len(notifications) == 1
        assert notifications[0].order_id is None


def test_delete_vehicle_nulls_order_reference(
    client, adminHeader, placeOrder, fleet, assign
):
    order = placeOrder()
    vehicleID = fleet["vehicles"][0]
    assign(order["id"], vehicleID, fleet["operators"][0])

    response = client.request(
        "DELETE", "/admin" + URL_VEHICLE, headers=adminHeader, data={"id": vehicleID}
    )
    assert response.status_code == 204
    assert getRecord(Vehicle, vehicleID) is None
    remaining = getRecord(Order, order["id"])
    assert remaining is not None
    assert remaining.vehicle_id is None
    assert remaining.operator_id == fleet["operators"][0]


def test_delete_operator_nulls_order_reference(
    client, adminHeader, placeOrder, fleet, assign
):
    order = placeOrder()
    operatorID = fleet["operators"][0]
    assign(order["id"], fleet["vehicles"][0], operatorID)

    response = client.request(
        "DELETE", "/admin" + URL_OPERATOR, headers=adminHeader, data={"id": operatorID}
    )
    assert response.status_code == 204
    assert getRecord(Order, order["id"]).operator_id is None


def test_provider_filters_orders_by_status(client, providerHeader, placeOrder, fleet, assign):
    pending = placeOrder()
    confirmed = placeOrder()
    assign(confirmed["id"], fleet["vehicles"][0], fleet["operators"][0])

    response = client.get(
        "/provider" + URL_ORDER,
        headers=providerHeader,
        params={"status": OrderStatus.PENDING},
    )
    assert response.status_code == 200
    assert [order["id"] for order in response.json()] == [pending["id"]]
