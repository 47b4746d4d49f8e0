"""SOS alerts API tests."""

from tests.conftest import CHENNAI, north_of


def _trigger(client, user_id="A", lat=CHENNAI[0], lon=CHENNAI[1], **extra):
    return client.post(
        "/api/sos/trigger",
        json={"user_id": user_id, "latitude": lat, "longitude": lon, **extra},
    )


def test_trigger_returns_summary(client):
    r = _trigger(client)

    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "PEERS_ALERTED"
    assert body["peers_notified_count"] == 0
    assert body["escalation_in_seconds"] == 90
    assert body["alert_id"]


def test_trigger_notifies_nearby_peers(client, gateway):
    client.post("/api/location/update", json={"user_id": "B", "latitude": north_of(CHENNAI, 5)[0], "longitude": CHENNAI[1]})
    client.post("/api/location/update", json={"user_id": "C", "latitude": north_of(CHENNAI, 20)[0], "longitude": CHENNAI[1]})

    r = _trigger(client)

    assert r.json()["peers_notified_count"] == 1
    assert gateway.notified_peers == ["B"]
    status = client.get("/api/sos/status/A").json()
    assert [p["peer_user_id"] for p in status["alert"]["peers_notified"]] == ["B"]


def test_trigger_without_coordinates_is_400(client):
    r = client.post("/api/sos/trigger", json={"user_id": "A"})
    assert r.status_code == 400
    assert "gps" in r.json()["detail"].lower()


def test_trigger_out_of_range_is_400(client):
    assert _trigger(client, lat=95).status_code == 400


def test_duplicate_trigger_is_409(client):
    first = _trigger(client).json()

    r = _trigger(client)

    assert r.status_code == 409
    detail = r.json()["detail"]
    assert "already active" in detail["message"]
    assert detail["alert_id"] == first["alert_id"]
    assert client.get("/api/sos/status/A").json()["alert"]["status"] == "PEERS_ALERTED"


def test_status_without_alert(client):
    r = client.get("/api/sos/status/nobody")
    assert r.status_code == 200
    assert r.json() == {"has_active_alert": False, "alert": None, "escalation_in_seconds": None}


def test_status_counts_down_then_escalates(client, clock, gateway):
    _trigger(client, distance_from_border=3.5)
    clock.advance(30)

    body = client.get("/api/sos/status/A").json()
    assert body["has_active_alert"] is True
    assert body["escalation_in_seconds"] == 60
    assert body["alert"]["distance_from_border"] == 3.5

    clock.advance(60)
    body = client.get("/api/sos/status/A").json()
    assert body["alert"]["status"] == "ESCALATED"
    assert body["alert"]["escalated_at"] is not None
    assert len(gateway.authority_calls) == 1


def test_cancel_by_user(client, clock, gateway):
    alert_id = _trigger(client).json()["alert_id"]
    clock.advance(10)

    r = client.post("/api/sos/cancel", json={"user_id": "A"})

    assert r.status_code == 200
    assert r.json() == {
        "success": True,
        "alert_id": alert_id,
        "status": "CANCELED",
        "changed": True,
        "escalated": False,
    }
    clock.advance(90)
    assert gateway.authority_calls == []
    assert client.get("/api/sos/status/A").json()["has_active_alert"] is False


def test_cancel_twice_by_alert_id_is_distinguishable_from_not_found(client):
    alert_id = _trigger(client).json()["alert_id"]
    client.post("/api/sos/cancel", json={"alert_id": alert_id})

    again = client.post("/api/sos/cancel", json={"alert_id": alert_id})
    missing = client.post("/api/sos/cancel", json={"alert_id": "does-not-exist"})

    assert again.status_code == 200
    assert again.json()["changed"] is False
    assert missing.status_code == 404


def test_cancel_without_active_alert_is_404(client):
    assert client.post("/api/sos/cancel", json={"user_id": "A"}).status_code == 404


def test_cancel_requires_a_target(client):
    assert client.post("/api/sos/cancel", json={}).status_code == 422


def test_cancel_after_escalation_flags_authority(client, clock):
    _trigger(client)
    clock.advance(90)

    body = client.post("/api/sos/cancel", json={"user_id": "A"}).json()

    assert body["status"] == "CANCELED"
    assert body["escalated"] is True


def test_resolve(client, clock, gateway):
    alert_id = _trigger(client).json()["alert_id"]

    r = client.post("/api/sos/resolve", json={"alert_id": alert_id})

    assert r.status_code == 200
    assert r.json()["status"] == "RESOLVED"
    clock.advance(90)
    assert gateway.authority_calls == []


def test_history_and_get_alert(client, clock):
    first = _trigger(client).json()["alert_id"]
    client.post("/api/sos/cancel", json={"user_id": "A"})
    clock.advance(5)
    second = _trigger(client).json()["alert_id"]

    history = client.get("/api/sos/history/A").json()
    assert [a["id"] for a in history] == [second, first]
    assert len(client.get("/api/sos/history/A", params={"limit": 1}).json()) == 1

    alert = client.get(f"/api/sos/alerts/{first}").json()
    assert alert["status"] == "CANCELED"
    assert alert["resolved_at"] is not None
    assert client.get("/api/sos/alerts/nope").status_code == 404
