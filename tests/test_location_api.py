from datetime import timedelta

from caddate.core.auth import create_access_token

from conftest import REF_LAT, REF_LNG, auth_headers, north_of


def _post(client, user_id, **body):
    payload = {"latitude": REF_LAT, "longitude": REF_LNG, **body}
    return client.post("/v1/location", json=payload, headers=auth_headers(user_id))


def test_update_location_returns_snapshot(client, make_user):
    make_user("alice")

    resp = _post(client, "alice", accuracy=12.5)

    assert resp.status_code == 200
    data = resp.json()
    assert data["user_id"] == "alice"
    assert data["latitude"] == REF_LAT
    assert data["accuracy"] == 12.5
    assert data["is_sharing"] is True
    assert data["last_updated_at"]


def test_update_location_accepts_client_timestamp(client, make_user):
    make_user("alice")
    resp = _post(client, "alice", timestamp="2026-05-01T12:00:00Z")
    assert resp.status_code == 200


def test_out_of_range_latitude_is_400_with_field(client, make_user):
    make_user("alice")

    resp = _post(client, "alice", latitude=90.1)

    assert resp.status_code == 400
    detail = resp.json()["detail"]
    assert detail["field"] == "latitude"


def test_negative_accuracy_is_400(client, make_user):
    make_user("alice")
    assert _post(client, "alice", accuracy=-1).status_code == 400
    assert _post(client, "alice", accuracy=0).status_code == 200


def test_non_numeric_latitude_is_400(client, make_user):
    make_user("alice")

    resp = _post(client, "alice", latitude="north")

    assert resp.status_code == 400
    assert resp.json()["detail"]["field"] == "latitude"


def test_missing_or_bad_token_is_401(client, make_user):
    make_user("alice")
    body = {"latitude": REF_LAT, "longitude": REF_LNG}

    assert client.post("/v1/location", json=body).status_code == 401
    assert client.post("/v1/location", json=body, headers={"Authorization": "Bearer nope"}).status_code == 401

    expired = create_access_token("alice", expires_in=timedelta(minutes=-1))
    resp = client.post("/v1/location", json=body, headers={"Authorization": f"Bearer {expired}"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Token expired"


def test_unknown_user_is_404(client):
    assert _post(client, "ghost").status_code == 404


def test_nearby_clamps_and_filters(client, make_user):
    make_user("me")
    make_user("near")
    make_user("far")
    _post(client, "me")
    _post(client, "near", latitude=north_of(REF_LAT, 50))
    _post(client, "far", latitude=north_of(REF_LAT, 20000))

    resp = client.get("/v1/location/nearby", params={"radius": 5000}, headers=auth_headers("me"))
    assert resp.status_code == 200
    data = resp.json()
    assert [u["user_id"] for u in data["users"]] == ["near"]
    assert data["users"][0]["distance_meters"] == 50

    resp = client.get(
        "/v1/location/nearby",
        params={"radius": 100000000, "limit": 1000},
        headers=auth_headers("me"),
    )
    data = resp.json()
    assert data["radius"] == 10000
    assert data["limit"] == 100

    data = client.get("/v1/location/nearby", params={"limit": 0}, headers=auth_headers("me")).json()
    assert data["limit"] == 1


def test_nearby_without_location_is_empty_200(client, make_user):
    make_user("me")

    resp = client.get("/v1/location/nearby", headers=auth_headers("me"))

    assert resp.status_code == 200
    assert resp.json()["users"] == []
    assert resp.json()["status"] == "no_location"


def test_stop_hides_user_from_others(client, make_user):
    make_user("me")
    make_user("bob")
    _post(client, "me")
    _post(client, "bob", latitude=north_of(REF_LAT, 100))

    resp = client.post("/v1/location/stop", headers=auth_headers("bob"))
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"

    users = client.get("/v1/location/nearby", headers=auth_headers("me")).json()["users"]
    assert users == []

    history = client.get("/v1/location/history", headers=auth_headers("bob")).json()
    assert history["sharing_enabled"] is False
    assert history["current_location"]["latitude"] == north_of(REF_LAT, 100)


def test_settings_round_trip(client, make_user):
    make_user("alice")
    _post(client, "alice", accuracy=9)

    resp = client.put(
        "/v1/location/settings",
        json={"is_sharing": False, "privacy": {"showLocation": False}},
        headers=auth_headers("alice"),
    )
    assert resp.status_code == 200

    data = client.get("/v1/location/settings", headers=auth_headers("alice")).json()
    assert data["is_sharing"] is False
    assert data["accuracy"] == 9
    assert data["privacy"] == {"showLocation": False}
    assert data["last_updated_at"]


def test_history_days_bounds(client, make_user):
    make_user("alice")
    assert client.get("/v1/location/history", params={"days": 0}, headers=auth_headers("alice")).status_code == 400
    resp = client.get("/v1/location/history", params={"days": 30}, headers=auth_headers("alice"))
    assert resp.status_code == 200
    assert resp.json()["days"] == 30
    assert resp.json()["current_location"] is None


def test_health_reports_online_count(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "online": 0}
