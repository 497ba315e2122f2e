from app.src.constants import API_VERSION


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {
        "status": "OK",
        "version": API_VERSION,
        "database": "OK",
    }


def test_audit_event_carries_request_details(client, clientHeader, monkeypatch):
    events = []
    monkeypatch.setattr("app.src.openobserve.logEvent", events.append)

    response = client.patch(
        "/client/account",
        headers=dict(clientHeader, **{"User-Agent": "fueltrack-tests"}),
        data={"first_name": "Juan"},
    )
    assert response.status_code == 200
    event = events[-1]
    assert event["_method"] == "PATCH"
    assert event["_path"] == "/client/account"
    assert event["_app"] == "CLIENT"
    assert event["_user_agent"] == "fueltrack-tests"
    assert event["_user_id"] == response.json()["id"]
    assert "password" not in event
