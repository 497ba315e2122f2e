from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.src import crypto
from app.src.db import sessionMaker, PaymentMethod
from app.src.enums import PaymentStatus, NotificationType
from app.src.urls import URL_PAYMENT, URL_PAYMENT_METHOD, URL_NOTIFICATION, URL_ORDER

CARD_NUMBER = "4111111111111111"


def cardData(expiry_days: int = 730, **overrides) -> dict:
    data = {
        "card_holder_name": "Juan Perez",
        "card_number": CARD_NUMBER,
        "card_type": "VISA",
        "expiry_date": (
            datetime.now(timezone.utc) + timedelta(days=expiry_days)
        ).isoformat(),
    }
    data.update(overrides)
    return data


@pytest.fixture
def addCard(client, clientHeader):
    def add(header: dict = None, **kwargs) -> dict:
        response = client.post(
            "/client" + URL_PAYMENT_METHOD,
            headers=header or clientHeader,
            data=cardData(**kwargs),
        )
        assert response.status_code == 201, response.text
        return response.json()

    return add


@pytest.fixture
def pay(client, clientHeader):
    def createPayment(order_id: int, payment_method_id: int, **extra):
        data = {"order_id": order_id, "payment_method_id": payment_method_id}
        data.update(extra)
        return client.post("/client" + URL_PAYMENT, headers=clientHeader, data=data)

    return createPayment


def setStatus(client, header: dict, payment_id: int, status: PaymentStatus):
    return client.patch(
        "/provider" + URL_PAYMENT,
        headers=header,
        data={"id": payment_id, "status": status},
    )


def test_card_number_is_encrypted(addCard):
    card = addCard()
    assert card["last_four_digits"] == "1111"
    assert "card_number" not in card
    assert "encrypted_card_number" not in card

    with sessionMaker() as session:
        stored = session.query(PaymentMethod).filter(PaymentMethod.id == card["id"]).first()
    assert CARD_NUMBER not in stored.encrypted_card_number
    assert crypto.cardCipher.decrypt(stored.encrypted_card_number.encode()).decode() == CARD_NUMBER


def test_single_default_card(client, clientHeader, addCard):
    first = addCard()
    second = addCard(card_number="5500000000000004", is_default=True)
    assert first["is_default"] is True
    assert second["is_default"] is True

    response = client.get("/client" + URL_PAYMENT_METHOD, headers=clientHeader)
    defaults = [card["id"] for card in response.json() if card["is_default"]]
    assert defaults == [second["id"]]


def test_payment_defaults_to_order_total(placeOrder, addCard, pay):
    order = placeOrder(quantity="100.00", price_per_liter="1.50")
    card = addCard()

    response = pay(order["id"], card["id"])
    assert response.status_code == 201, response.text
    payment = response.json()
    assert Decimal(payment["amount"]) == Decimal("150.00")
    assert payment["status"] == PaymentStatus.PENDING
    assert payment["transaction_id"] is None


def test_payment_amount_must_be_positive(placeOrder, addCard, pay):
    order = placeOrder()
    card = addCard()
    response = pay(order["id"], card["id"], amount="-5.00")
    assert response.status_code == 422


def test_payment_for_cancelled_order_fails(client, clientHeader, placeOrder, addCard, pay):
    order = placeOrder()
    card = addCard()
    client.patch("/client" + URL_ORDER, headers=clientHeader, data={"id": order["id"]})

    response = pay(order["id"], card["id"])
    assert response.status_code == 406
    assert response.headers["X-Error"] == "InvalidValue"


def test_payment_for_foreign_order_fails(placeOrder, addCard, pay, otherHeader):
    order = placeOrder(header=otherHeader)
    card = addCard()
    assert pay(order["id"], card["id"]).status_code == 403


def test_payment_with_foreign_card_fails(placeOrder, addCard, pay, otherHeader):
    order = placeOrder()
    card = addCard(header=otherHeader)
    assert pay(order["id"], card["id"]).status_code == 403


def test_payment_with_expired_card_fails(placeOrder, addCard, pay):
    order = placeOrder()
    card = addCard(expiry_days=-30)
    assert pay(order["id"], card["id"]).status_code == 406


def test_completed_payment(client, clientHeader, providerHeader, placeOrder, addCard, pay):
    order = placeOrder()
    payment = pay(order["id"], addCard()["id"]).json()

    response = setStatus(client, providerHeader, payment["id"], PaymentStatus.COMPLETED)
    assert response.status_code == 200, response.text
    data = response.json()
    assert data["status"] == PaymentStatus.COMPLETED
    assert data["transaction_id"].startswith("TXN-")
    assert data["processed_at"] is not None

    response = client.get(
        "/client" + URL_NOTIFICATION,
        headers=clientHeader,
        params={"type": NotificationType.PAYMENT_CONFIRMATION},
    )
    assert len(response.json()) == 1
    assert response.json()[0]["order_id"] == order["id"]


def test_failed_payment_is_terminal(client, providerHeader, placeOrder, addCard, pay):
    order = placeOrder()
    payment = pay(order["id"], addCard()["id"]).json()

    response = setStatus(client, providerHeader, payment["id"], PaymentStatus.FAILED)
    assert response.status_code == 200
    assert response.json()["processed_at"] is not None
    assert response.json()["transaction_id"] is None

    for status in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED):
        response = setStatus(client, providerHeader, payment["id"], status)
        assert response.status_code == 406
        assert "FAILED" in response.json()["detail"]


def test_refunded_payment_is_terminal(client, adminHeader, placeOrder, addCard, pay):
    order = placeOrder()
    payment = pay(order["id"], addCard()["id"]).json()

    for status in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED):
        response = client.patch(
            "/admin" + URL_PAYMENT,
            headers=adminHeader,
            data={"id": payment["id"], "status": status},
        )
        assert response.status_code == 200

    response = client.patch(
        "/admin" + URL_PAYMENT,
        headers=adminHeader,
        data={"id": payment["id"], "status": PaymentStatus.COMPLETED},
    )
    assert response.status_code == 406


def test_pending_payment_cannot_be_refunded(client, providerHeader, placeOrder, addCard, pay):
    order = placeOrder()
    payment = pay(order["id"], addCard()["id"]).json()
    response = setStatus(client, providerHeader, payment["id"], PaymentStatus.REFUNDED)
    assert response.status_code == 406


def test_delete_used_payment_method_fails(client, clientHeader, placeOrder, addCard, pay):
    order = placeOrder()
    card = addCard()
    pay(order["id"], card["id"])

    response = client.request(
        "DELETE",
        "/client" + URL_PAYMENT_METHOD,
        headers=clientHeader,
        data={"id": card["id"]},
    )
    assert response.status_code == 409
    assert response.headers["X-Error"] == "DependencyExists"


def test_delete_unused_payment_method(client, clientHeader, addCard):
    card = addCard()
    response = client.request(
        "DELETE",
        "/client" + URL_PAYMENT_METHOD,
        headers=clientHeader,
        data={"id": card["id"]},
    )
    assert response.status_code == 204
    response = client.get("/client" + URL_PAYMENT_METHOD, headers=clientHeader)
    assert response.json() == []


def test_payments_are_deleted_with_order(client, adminHeader, clientHeader, placeOrder, addCard, pay):
    order = placeOrder()
    pay(order["id"], addCard()["id"])

    client.request(
        "DELETE", "/admin" + URL_ORDER, headers=adminHeader, data={"id": order["id"]}
    )
    response = client.get("/admin" + URL_PAYMENT, headers=adminHeader)
    assert response.json() == []


def test_client_only_sees_own_payments(client, clientHeader, otherHeader, placeOrder, addCard):
    order = placeOrder()
    client.post(
        "/client" + URL_PAYMENT,
        headers=clientHeader,
        data={"order_id": order["id"], "payment_method_id": addCard()["id"]},
    )
    response = client.get("/client" + URL_PAYMENT, headers=otherHeader)
    assert response.json() == []
    response = client.get("/client" + URL_PAYMENT, headers=clientHeader)
    assert len(response.json()) == 1
    assert response.json()[0]["order_id"] == order["id"]
