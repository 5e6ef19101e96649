import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from app.main import app
from app.services.realtime import InMemoryPublisher, safe_publish, session_channel
from helpers import API, make_jpeg, user_headers


@pytest.mark.asyncio
async def test_publish_fans_out_to_every_subscriber_of_a_channel():
    publisher = InMemoryPublisher()

    async with publisher.subscribe("session_a") as first, publisher.subscribe("session_a") as second:
        async with publisher.subscribe("session_b") as other:
            publisher.publish("session_a", "new_photo", {"id": "p1"})
            assert first.drain() == [{"event": "new_photo", "data": {"id": "p1"}}]
            assert second.drain() == [{"event": "new_photo", "data": {"id": "p1"}}]
            assert other.drain() == []


@pytest.mark.asyncio
async def test_late_subscribers_get_no_replay():
    publisher = InMemoryPublisher()
    publisher.publish("session_a", "new_photo", {"id": "early"})

    async with publisher.subscribe("session_a") as subscription:
        publisher.publish("session_a", "photo_deleted", {"id": "late"})
        assert await subscription.get() == {"event": "photo_deleted", "data": {"id": "late"}}


@pytest.mark.asyncio
async def test_full_subscriber_drops_events_without_blocking():
    publisher = InMemoryPublisher(max_pending=2)

    async with publisher.subscribe("session_a") as slow, publisher.subscribe("session_a") as fast:
        for i in range(3):
            publisher.publish("session_a", "new_photo", {"id": str(i)})
            fast.drain()
        assert [m["data"]["id"] for m in slow.drain()] == ["0", "1"]


@pytest.mark.asyncio
async def test_unsubscribe_releases_channel():
    publisher = InMemoryPublisher()
    async with publisher.subscribe("session_a"):
        assert publisher.subscriber_count("session_a") == 1
    assert publisher.subscriber_count("session_a") == 0


def test_safe_publish_swallows_transport_failures():
    class BrokenPublisher:
        def publish(self, channel, event, payload):
            raise ConnectionError("broker down")

    safe_publish(BrokenPublisher(), session_channel("s1"), "new_photo", {"id": "p1"})


def test_websocket_streams_session_events():
    with TestClient(app) as client:
        sess = client.post(f"{API}/sessions", json={"title": "Live"}, headers=user_headers()).json()["data"]

        with client.websocket_connect(f"/ws/sessions/{sess['id']}") as ws:
            assert ws.receive_json() == {"event": "session_joined", "data": {"sessionId": sess["id"]}}

            response = client.post(
                f"{API}/sessions/{sess['id']}/photos",
                files=[("photos", ("live.jpg", make_jpeg(), "image/jpeg"))],
                headers=user_headers(),
            )
            assert response.status_code == 201
            photo = response.json()["data"]["photos"][0]

            event = ws.receive_json()
            assert event["event"] == "new_photo"
            assert event["data"]["id"] == photo["id"]
            assert event["data"]["thumbnailUrl"] == photo["thumbnail_url"]

            client.delete(f"{API}/photos/{photo['id']}", headers=user_headers())
            assert ws.receive_json() == {"event": "photo_deleted", "data": {"id": photo["id"]}}


def test_websocket_on_private_session_needs_access_code():
    with TestClient(app) as client:
        sess = client.post(
            f"{API}/sessions",
            json={"title": "Private", "visibility": "private", "access_code": "LIVE42"},
            headers=user_headers(),
        ).json()["data"]

        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect(f"/ws/sessions/{sess['id']}"):
                pass
        assert exc.value.code == 1008
        assert exc.value.reason == "NOT_AUTHENTICATED"

        with client.websocket_connect(f"/ws/sessions/{sess['id']}?accessCode=LIVE42") as ws:
            assert ws.receive_json()["event"] == "session_joined"


def test_websocket_unknown_session_is_closed():
    with TestClient(app) as client:
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect("/ws/sessions/missing"):
                pass
        assert exc.value.code == 1008
        assert exc.value.reason == "SESSION_NOT_FOUND"
