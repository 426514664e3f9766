import asyncio
import json

import httpx
import pytest

from caddate.client.api_client import CaddateApiClient
from caddate.client.providers import Position
from caddate.core.errors import AuthError, NotFoundError, TransientIOError, ValidationError

from conftest import REF_LAT, REF_LNG


def _client(handler):
    return CaddateApiClient("http://api.test/", "tok-123", transport=httpx.MockTransport(handler))


def _call(handler, method, *args, **kwargs):
    async def go():
        async with _client(handler) as api:
            return await getattr(api, method)(*args, **kwargs)

    return asyncio.run(go())


def test_update_location_posts_position_with_bearer_token():
    seen = {}

    def handler(request: httpx.Request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"user_id": "me", "is_sharing": True})

    data = _call(handler, "update_location", Position(REF_LAT, REF_LNG, accuracy=3.0))

    assert data["user_id"] == "me"
    assert seen["url"] == "http://api.test/v1/location"
    assert seen["auth"] == "Bearer tok-123"
    assert seen["body"]["latitude"] == REF_LAT
    assert seen["body"]["accuracy"] == 3.0
    assert seen["body"]["is_sharing"] is True
    assert "timestamp" in seen["body"]


def test_nearby_sends_only_given_params():
    seen = {}

    def handler(request: httpx.Request):
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"users": [], "total": 0, "radius": 5000, "limit": 50})

    _call(handler, "nearby", radius=5000)

    assert seen["params"] == {"radius": "5000"}


@pytest.mark.parametrize(
    "status,body,error",
    [
        (400, {"detail": {"message": "latitude: out of range", "field": "latitude", "reason": "out of range"}}, ValidationError),
        (401, {"detail": "Token expired"}, AuthError),
        (404, {"detail": {"message": "User not found"}}, NotFoundError),
        (503, {"detail": "down"}, TransientIOError),
    ],
)
def test_error_statuses_map_to_domain_errors(status, body, error):
    def handler(request: httpx.Request):
        return httpx.Response(status, json=body)

    with pytest.raises(error):
        _call(handler, "stop_sharing")


def test_validation_error_keeps_field():
    def handler(request: httpx.Request):
        return httpx.Response(400, json={"detail": {"message": "bad", "field": "accuracy", "reason": "must be zero or positive"}})

    with pytest.raises(ValidationError) as exc:
        _call(handler, "update_location", Position(REF_LAT, REF_LNG, accuracy=-1.0))
    assert exc.value.field == "accuracy"


def test_network_failure_is_transient():
    def handler(request: httpx.Request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransientIOError):
        _call(handler, "get_settings")


def test_timeout_is_transient():
    def handler(request: httpx.Request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(TransientIOError):
        _call(handler, "history")


def test_update_settings_sends_only_given_fields():
    seen = {}

    def handler(request: httpx.Request):
        seen["method"] = request.method
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"is_sharing": False, "privacy": {}})

    _call(handler, "update_settings", is_sharing=False)

    assert seen == {"method": "PUT", "body": {"is_sharing": False}}
