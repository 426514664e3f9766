import math
import os
from datetime import datetime, timedelta

# Settings are read at import time, so pin them before caddate is imported.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["LOG_FILE"] = ""
os.environ["LOG_LEVEL"] = "INFO"
os.environ["LOCATION_MIN_UPDATE_INTERVAL_SECONDS"] = "0"

import pytest
from sqlalchemy.orm import sessionmaker
from starlette.testclient import TestClient

from caddate.core.auth import create_access_token
from caddate.core.db import get_db, make_engine
from caddate.core.geo import EARTH_RADIUS_M
from caddate.core.init_db import init_db
from caddate.models.location import UserLocation
from caddate.models.user import User

# Bagdat Avenue, Istanbul
REF_LAT = 40.9884
REF_LNG = 29.0255

NOW = datetime(2026, 5, 1, 12, 0, 0)


def north_of(lat: float, meters: float) -> float:
    return lat + math.degrees(meters / EARTH_RADIUS_M)


def auth_headers(user_id: str, email: str | None = None) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id, email=email)}"}


@pytest.fixture
def engine():
    eng = make_engine("sqlite://")
    init_db(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_user(db):
    def _make(user_id: str, **fields) -> User:
        user = User(
            id=user_id,
            email=fields.pop("email", f"{user_id}@example.com"),
            first_name=fields.pop("first_name", user_id.capitalize()),
            **fields,
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def place(db):
    """Write a location row directly, bypassing validation and the clock."""

    def _place(user_id, lat, lng, *, sharing=True, updated_at=NOW, accuracy=5.0) -> UserLocation:
        loc = db.get(UserLocation, user_id) or UserLocation(user_id=user_id)
        loc.latitude = lat
        loc.longitude = lng
        loc.accuracy = accuracy
        loc.is_sharing = sharing
        loc.last_updated_at = updated_at
        db.add(loc)
        db.commit()
        return loc

    return _place


@pytest.fixture
def client(session_factory):
    from caddate.main import app

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def fresh_now(monkeypatch):
    """Freeze `utcnow()` in the services at NOW."""
    import caddate.services.location_store as store
    import caddate.services.proximity as proximity

    monkeypatch.setattr(store, "utcnow", lambda: NOW)
    monkeypatch.setattr(proximity, "utcnow", lambda: NOW)
    return NOW


def minutes_ago(n: float) -> datetime:
    return NOW - timedelta(minutes=n)
