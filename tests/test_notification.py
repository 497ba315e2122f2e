from app.src.enums import NotificationType
from app.src.urls import URL_NOTIFICATION


def sendNotification(client, adminHeader, user_id: int, **extra):
    data = {"user_id": user_id, "title": "Maintenance", "message": "Service window"}
    data.update(extra)
    return client.post("/admin" + URL_NOTIFICATION, headers=adminHeader, data=data)


def test_admin_sends_notification(client, adminHeader, clientHeader, accounts):
    response = sendNotification(client, adminHeader, accounts["client"])
    assert response.status_code == 201, response.text
    assert response.json()["type"] == NotificationType.SYSTEM_NOTIFICATION
    assert response.json()["is_read"] is False

    response = client.get("/client" + URL_NOTIFICATION, headers=clientHeader)
    assert len(response.json()) == 1


def test_notification_for_unknown_user(client, adminHeader):
    response = sendNotification(client, adminHeader, 9999)
    assert response.status_code == 404


def test_notification_order_must_belong_to_user(
    client, adminHeader, accounts, placeOrder
):
    order = placeOrder()
    response = sendNotification(
        client, adminHeader, accounts["other"], order_id=order["id"]
    )
    assert response.status_code == 406
    assert response.headers["X-Error"] == "InvalidAssociation"


def test_mark_notification_as_read(client, adminHeader, clientHeader, accounts):
    notification = sendNotification(client, adminHeader, accounts["client"]).json()

    response = client.patch(
        "/client" + URL_NOTIFICATION,
        headers=clientHeader,
        data={"id": notification["id"]},
    )
    assert response.status_code == 200
    assert response.json()["is_read"] is True

    response = client.get(
        "/client" + URL_NOTIFICATION, headers=clientHeader, params={"is_read": False}
    )
    assert response.json() == []


def test_foreign_notification_is_protected(
    client, adminHeader, otherHeader, accounts
):
    notification = sendNotification(client, adminHeader, accounts["client"]).json()

    response = client.patch(
        "/client" + URL_NOTIFICATION, headers=otherHeader, data={"id": notification["id"]}
    )
    assert response.status_code == 403
    response = client.request(
        "DELETE",
        "/client" + URL_NOTIFICATION,
        headers=otherHeader,
        data={"id": notification["id"]},
    )
    assert response.status_code == 403


def test_delete_notification(client, adminHeader, clientHeader, accounts):
    notification = sendNotification(client, adminHeader, accounts["client"]).json()
    response = client.request(
        "DELETE",
        "/client" + URL_NOTIFICATION,
        headers=clientHeader,
        data={"id": notification["id"]},
    )
    assert response.status_code == 204
    response = client.get("/client" + URL_NOTIFICATION, headers=clientHeader)
    assert response.json() == []
