from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from zonecast.main import create_app
from zonecast.timeutil import utcnow


@pytest.fixture
def client(engine):
    app = create_app(engine)
    with TestClient(app) as test_client:
        yield test_client


def _window(hours_before=1, hours_after=1):
    now = utcnow()
    return {
        "start_time": (now - timedelta(hours=hours_before)).isoformat(),
        "end_time": (now + timedelta(hours=hours_after)).isoformat(),
    }


def _create_content(client, title="Poster", zone="all", **extra):
    body = {"title": title, "media_url": f"/uploads/{title}.png", "mime_type": "image/png", "zone": zone, **extra}
    response = client.post("/content", json=body)
    assert response.status_code == 200, response.text
    return response.json()


def _create_schedule(client, content_id, zone, priority=1, **window):
    body = {"content_id": content_id, "zone": zone, "priority": priority, **(window or _window())}
    response = client.post("/schedules", json=body)
    assert response.status_code == 200, response.text
    return response.json()


def test_root_and_health(client):
    assert client.get("/").json()["ok"] is True
    assert client.get("/healthz").json()["ok"] is True


def test_zone_listing(client):
    zones = client.get("/zones").json()
    assert [zone["id"] for zone in zones] == ["all", "reception", "restaurant", "skislope", "lockers", "shop"]


def test_content_crud(client):
    created = _create_content(client, "Menu", zone="restaurant", duration_sec=15)
    assert created["type"] == "image"
    assert created["duration_sec"] == 15

    assert client.get(f"/content/{created['id']}").json()["title"] == "Menu"
    assert [item["id"] for item in client.get("/content", params={"zone": "restaurant"}).json()] == [created["id"]]

    updated = client.put(f"/content/{created['id']}", json={"title": "Lunch"})
    assert updated.status_code == 200
    assert updated.json()["title"] == "Lunch"

    assert client.delete(f"/content/{created['id']}").json() == {"ok": True}
    assert client.get("/content").json() == []
    assert client.get("/content/stats").json()["total"] == 0


def test_content_errors(client):
    assert client.get("/content/missing").status_code == 404
    assert client.put("/content/missing", json={"title": "x"}).status_code == 404
    assert client.delete("/content/missing").status_code == 404
    response = client.post("/content", json={"title": "x", "media_url": "/x", "zone": "parking"})
    assert response.status_code == 400
    assert "Unknown zone" in response.json()["detail"]
    assert client.post("/content", json={"title": "", "media_url": "/x"}).status_code == 422


def test_schedule_errors(client):
    content = _create_content(client)
    now = utcnow().isoformat()
    response = client.post(
        "/schedules",
        json={"content_id": content["id"], "zone": "shop", "start_time": now, "end_time": now},
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "End time must be after start time."

    response = client.post("/schedules", json={"content_id": "missing", "zone": "shop", **_window()})
    assert response.status_code == 400
    assert client.delete("/schedules/missing").status_code == 404


def test_schedule_creation_reports_overlaps(client):
    content = _create_content(client, zone="reception")
    blocker = _create_schedule(client, content["id"], "reception", priority=5)

    created = _create_schedule(client, content["id"], "reception", priority=1)
    assert [warning["id"] for warning in created["warnings"]] == [blocker["schedule"]["id"]]
    assert blocker["warnings"] == []


def test_pull_endpoint(client):
    low_content = _create_content(client, "A", zone="reception")
    high_content = _create_content(client, "B", zone="reception")
    low = _create_schedule(client, low_content["id"], "reception", priority=1)
    high = _create_schedule(client, high_content["id"], "reception", priority=5)

    body = client.get("/schedule/reception").json()
    assert body["zone"] == "reception"
    assert [item["entry"]["id"] for item in body["items"]] == [high["schedule"]["id"], low["schedule"]["id"]]

    client.delete(f"/schedules/{high['schedule']['id']}")
    body = client.get("/schedule/reception").json()
    assert [item["content"]["id"] for item in body["items"]] == [low_content["id"]]

    assert client.get("/schedule/shop").json()["items"] == []
    assert client.get("/schedule/parking").status_code == 404


def test_schedule_listing_and_stats(client):
    content = _create_content(client)
    _create_schedule(client, content["id"], "shop")
    _create_schedule(client, content["id"], "lockers", **_window(hours_before=-2, hours_after=3))

    assert len(client.get("/schedules").json()) == 2
    assert len(client.get("/schedules", params={"zone": "shop"}).json()) == 1
    assert client.get("/schedules/stats").json() == {"total": 2, "active": 1, "upcoming": 1}
    assert len(client.get("/schedules/lockers/upcoming").json()) == 1


def test_activity_log(client):
    _create_content(client)
    logs = client.get("/logs", params={"limit": 5}).json()
    assert logs[0]["message"] == "Content added"


def test_websocket_join_and_request_content(client):
    content = _create_content(client, "Slope", zone="skislope")
    entry = _create_schedule(client, content["id"], "skislope")

    with client.websocket_connect("/ws/updates") as ws:
        assert ws.receive_json()["type"] == "hello"
        ws.send_json({"type": "joinZone", "payload": {"zone": "skislope"}})
        ws.send_json({"type": "requestContent", "payload": {"zone": "skislope"}})
        message = ws.receive_json()
        assert message["type"] == "activeSetUpdated"
        assert [item["entry"]["id"] for item in message["payload"]["items"]] == [entry["schedule"]["id"]]


def test_websocket_receives_push_on_mutation(client):
    content = _create_content(client, "Lockers", zone="lockers")

    with client.websocket_connect("/ws/updates") as ws:
        ws.receive_json()
        ws.send_json({"type": "joinZone", "payload": {"zone": "lockers"}})
        ws.send_json({"type": "ping", "payload": {"sent_at": 12.5}})
        assert ws.receive_json()["payload"] == {"sent_at": 12.5}

        entry = _create_schedule(client, content["id"], "lockers")
        message = ws.receive_json()
        assert message["type"] == "activeSetUpdated"
        assert message["payload"]["zone"] == "lockers"
        assert [item["entry"]["id"] for item in message["payload"]["items"]] == [entry["schedule"]["id"]]


def test_websocket_rejects_unknown_zone(client):
    with client.websocket_connect("/ws/updates") as ws:
        ws.receive_json()
        ws.send_json({"type": "joinZone", "payload": {"zone": "parking"}})
        message = ws.receive_json()
        assert message["type"] == "error"
        assert "parking" in message["payload"]["detail"]


def test_websocket_survives_non_object_payload(client):
    with client.websocket_connect("/ws/updates") as ws:
        ws.receive_json()
        ws.send_json({"type": "joinZone", "payload": "reception"})
        ws.send_json({"type": "requestContent", "payload": ["reception"]})
        ws.send_json({"type": "ping", "payload": {"sent_at": 3.0}})
        message = ws.receive_json()
        assert message["type"] == "pong"
        assert message["payload"] == {"sent_at": 3.0}


def test_websocket_request_content_rejects_unknown_zone(client):
    with client.websocket_connect("/ws/updates") as ws:
        ws.receive_json()
        ws.send_json({"type": "requestContent", "payload": {"zone": "parking"}})
        message = ws.receive_json()
        assert message["type"] == "error"
        assert "parking" in message["payload"]["detail"]
        assert client.get("/schedule/parking").status_code == 404


def test_zero_limits_return_nothing(client):
    _create_content(client)
    assert client.get("/logs", params={"limit": 0}).json() == []
    assert client.get("/schedules/shop/upcoming", params={"limit": 0}).json() == []
