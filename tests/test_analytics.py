from datetime import datetime, timedelta, timezone
from decimal import Decimal

from app.src.enums import OrderStatus, PaymentStatus
from app.src.urls import URL_ANALYTICS, URL_ORDER, URL_PAYMENT, URL_PAYMENT_METHOD


def payOrder(client, clientHeader, providerHeader, order_id: int, status: PaymentStatus):
    card = client.post(
        "/client" + URL_PAYMENT_METHOD,
        headers=clientHeader,
        data={
            "card_holder_name": "Client Test",
            "card_number": "4111111111111111",
            "card_type": "VISA",
            "expiry_date": "2099-12-31T00:00:00+00:00",
        },
    ).json()
    payment = client.post(
        "/client" + URL_PAYMENT,
        headers=clientHeader,
        data={"order_id": order_id, "payment_method_id": card["id"]},
    ).json()
    response = client.patch(
        "/provider" + URL_PAYMENT,
        headers=providerHeader,
        data={"id": payment["id"], "status": status},
    )
    assert response.status_code == 200, response.text
    return response.json()


def test_empty_summary(client, adminHeader):
    response = client.get("/admin" + URL_ANALYTICS, headers=adminHeader)
    assert response.status_code == 200
    data = response.json()
    assert data["total_orders"] == 0
    assert len(data["orders_by_status"]) == len(OrderStatus)
    assert Decimal(data["total_revenue"]) == Decimal("0")


def test_summary_counts_and_revenue(
    client, adminHeader, clientHeader, providerHeader, placeOrder, fleet, assign
):
    paid = placeOrder(quantity="100.00", price_per_liter="1.50")
    cancelled = placeOrder(quantity="10.00", price_per_liter="2.00")
    placeOrder(quantity="5.00", price_per_liter="2.00")
    assign(paid["id"], fleet["vehicles"][0], fleet["operators"][0])
    client.patch("/client" + URL_ORDER, headers=clientHeader, data={"id": cancelled["id"]})
    payOrder(client, clientHeader, providerHeader, paid["id"], PaymentStatus.COMPLETED)

    response = client.get("/admin" + URL_ANALYTICS, headers=adminHeader)
    assert response.status_code == 200, response.text
    data = response.json()
    counts = {item["status"]: item["count"] for item in data["orders_by_status"]}
    assert data["total_orders"] == 3
    assert counts[OrderStatus.PENDING] == 1
    assert counts[OrderStatus.CONFIRMED] == 1
    assert counts[OrderStatus.CANCELLED] == 1
    assert counts[OrderStatus.DELIVERED] == 0
    assert Decimal(data["total_revenue"]) == Decimal("150.00")
    assert Decimal(data["refunded_amount"]) == Decimal("0")


def test_delivered_quantity(
    client, adminHeader, providerHeader, placeOrder, fleet, assign
):
    order = placeOrder(quantity="250.50")
    assign(order["id"], fleet["vehicles"][0], fleet["operators"][0])
    for status in (OrderStatus.IN_TRANSIT, OrderStatus.DELIVERED):
        client.patch(
            "/provider" + URL_ORDER,
            headers=providerHeader,
            data={"id": order["id"], "status": status},
        )

    response = client.get("/admin" + URL_ANALYTICS, headers=adminHeader)
    assert Decimal(response.json()["delivered_quantity"]) == Decimal("250.50")


def test_period_excludes_older_orders(client, adminHeader, placeOrder):
    placeOrder()
    tomorrow = datetime.now(timezone.utc) + timedelta(days=1)
    response = client.get(
        "/admin" + URL_ANALYTICS,
        headers=adminHeader,
        params={"created_on_ge": tomorrow.isoformat()},
    )
    assert response.json()["total_orders"] == 0


def test_analytics_requires_admin(client, clientHeader):
    response = client.get("/admin" + URL_ANALYTICS, headers=clientHeader)
    assert response.status_code == 401
