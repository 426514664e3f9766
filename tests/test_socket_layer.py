import asyncio

import pytest

from caddate.client.nearby import NearbyUsers
from caddate.client.providers import Position
from caddate.client.socket_client import RealtimeClient
from caddate.core.errors import TransientIOError
from caddate.realtime.socket_server import SocketServer, extract_token

from conftest import REF_LAT, REF_LNG, north_of


def test_token_comes_from_auth_payload_first():
    environ = {"HTTP_AUTHORIZATION": "Bearer from-header"}
    assert extract_token(environ, {"token": "from-auth"}) == "from-auth"
    assert extract_token(environ, None) == "from-header"
    assert extract_token({"HTTP_AUTHORIZATION": "Basic abc"}, {}) is None
    assert extract_token({}, None) is None


def test_each_server_owns_its_registry(session_factory):
    a = SocketServer(session_factory=session_factory)
    b = SocketServer(session_factory=session_factory)
    assert a.registry is not b.registry
    assert a.hub.registry is a.registry


def _client():
    nearby = NearbyUsers(self_user_id="me")
    nearby.set_origin(REF_LAT, REF_LNG)
    return RealtimeClient("http://localhost:3000", "tok", nearby=nearby)


def _push(user_id, meters):
    return {"user_id": user_id, "location": {"latitude": north_of(REF_LAT, meters), "longitude": REF_LNG}}


def test_emit_while_disconnected_is_transient():
    client = _client()
    with pytest.raises(TransientIOError):
        asyncio.run(client.send_location(Position(REF_LAT, REF_LNG)))


def test_pushes_and_snapshots_feed_nearby_set():
    client = _client()

    asyncio.run(client._on_user_location_update(_push("bob", 80)))
    assert "bob" in client.nearby

    asyncio.run(client._on_nearby_users({"users": []}))
    assert len(client.nearby) == 0


def test_user_left_keeps_user_with_another_device_online():
    client = _client()
    asyncio.run(client._on_user_location_update(_push("bob", 80)))
    client.online = [
        {"user_id": "bob", "socket_id": "sid-phone"},
        {"user_id": "bob", "socket_id": "sid-tablet"},
    ]

    asyncio.run(client._on_user_left({"user_id": "bob", "socket_id": "sid-phone"}))
    assert "bob" in client.nearby

    client.online = [{"user_id": "bob", "socket_id": "sid-tablet"}]
    asyncio.run(client._on_user_left({"user_id": "bob", "socket_id": "sid-tablet"}))
    assert "bob" not in client.nearby


def test_request_errors_are_kept_for_the_ui():
    client = _client()
    asyncio.run(client._on_request_error({"event": "location_update", "message": "is_sharing: location sharing is off"}))
    assert client.last_error["event"] == "location_update"


def test_status_updates_are_tracked_until_the_user_leaves():
    client = _client()

    asyncio.run(client._on_user_status_updated({"user_id": "bob", "status": "away"}))
    assert client.statuses == {"bob": "away"}

    asyncio.run(client._on_user_left({"user_id": "bob", "socket_id": "sid-b"}))
    assert client.statuses == {}
