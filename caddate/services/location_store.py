from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Dict, Optional

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from caddate.core.errors import InternalError, NotFoundError, ThrottledError, ValidationError
from caddate.core.location_config import MIN_UPDATE_INTERVAL_SECONDS
from caddate.core.time import utcnow
from caddate.models.location import UserLocation
from caddate.models.user import User
from caddate.schemas.location import (
    LocationHistoryResponse,
    LocationPoint,
    LocationSettingsResponse,
)


# ---------- VALIDATION ----------

def _require_number(field: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(field, "must be a number")
    value = float(value)
    if not math.isfinite(value):
        raise ValidationError(field, "must be a finite number")
    return value


def validate_coordinates(latitude: Any, longitude: Any, accuracy: Any = None) -> tuple[float, float, Optional[float]]:
    lat = _require_number("latitude", latitude)
    if lat < -90 or lat > 90:
        raise ValidationError("latitude", "must be between -90 and 90")

    lng = _require_number("longitude", longitude)
    if lng < -180 or lng > 180:
        raise ValidationError("longitude", "must be between -180 and 180")

    acc = None
    if accuracy is not None:
        acc = _require_number("accuracy", accuracy)
        if acc < 0:
            raise ValidationError("accuracy", "must be zero or positive")

    return lat, lng, acc


# ---------- LOOKUPS ----------

def get_active_user(db: Session, user_id: str) -> User:
    user = db.get(User, user_id)
    if user is None or not user.is_available:
        raise NotFoundError("User not found")
    return user


def get_location(db: Session, user_id: str) -> Optional[UserLocation]:
    return db.get(UserLocation, user_id)


def _commit(db: Session, what: str, user_id: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"{what} failed | user={user_id}")
        raise InternalError(f"{what} failed")


# ---------- WRITES ----------

def update_location(
    db: Session,
    user_id: str,
    latitude: Any,
    longitude: Any,
    accuracy: Any = None,
    is_sharing: bool = True,
    now: Optional[datetime] = None,
) -> UserLocation:
    lat, lng, acc = validate_coordinates(latitude, longitude, accuracy)
    get_active_user(db, user_id)
    now = now or utcnow()

    loc = db.get(UserLocation, user_id)
    if loc is None:
        loc = UserLocation(user_id=user_id)
        db.add(loc)
    elif MIN_UPDATE_INTERVAL_SECONDS > 0 and loc.last_updated_at is not None:
        elapsed = (now - loc.last_updated_at).total_seconds()
        if elapsed < MIN_UPDATE_INTERVAL_SECONDS:
            raise ThrottledError("Location updated too frequently")

    loc.latitude = lat
    loc.longitude = lng
    loc.accuracy = acc
    loc.is_sharing = bool(is_sharing)
    loc.last_updated_at = now

    _commit(db, "Location update", user_id)
    db.refresh(loc)

    logger.debug(f"Location updated | user={user_id} lat={lat} lng={lng} acc={acc} sharing={loc.is_sharing}")
    return loc


def stop_sharing(db: Session, user_id: str) -> Optional[UserLocation]:
    get_active_user(db, user_id)

    loc = db.get(UserLocation, user_id)
    if loc is None:
        return None

    loc.is_sharing = False
    _commit(db, "Stop sharing", user_id)

    logger.info(f"Location sharing stopped | user={user_id}")
    return loc


def update_settings(
    db: Session,
    user_id: str,
    is_sharing: Optional[bool] = None,
    privacy: Optional[Dict[str, Any]] = None,
) -> LocationSettingsResponse:
    user = get_active_user(db, user_id)

    if is_sharing is not None:
        loc = db.get(UserLocation, user_id)
        if loc is None:
            loc = UserLocation(user_id=user_id)
            db.add(loc)
        # coordinates stay as they are; a flip to True without a fresh fix
        # still keeps the user out of nearby results until the next update
        loc.is_sharing = bool(is_sharing)

    if privacy:
        # reassign so the JSON column is marked dirty
        user.privacy = {**(user.privacy or {}), **privacy}

    _commit(db, "Settings update", user_id)

    logger.info(f"Location settings updated | user={user_id} sharing={is_sharing} privacy_keys={sorted(privacy or {})}")
    return get_settings(db, user_id)


# ---------- READS ----------

def get_settings(db: Session, user_id: str) -> LocationSettingsResponse:
    user = get_active_user(db, user_id)
    loc = db.get(UserLocation, user_id)

    return LocationSettingsResponse(
        is_sharing=bool(loc.is_sharing) if loc else False,
        accuracy=loc.accuracy if loc else None,
        last_updated_at=loc.last_updated_at if loc else None,
        privacy=dict(user.privacy or {}),
    )


def get_history(db: Session, user_id: str, days: int = 7) -> LocationHistoryResponse:
    # Only the latest snapshot is kept; `days` is echoed back.
    get_active_user(db, user_id)
    loc = db.get(UserLocation, user_id)

    current = None
    if loc is not None and loc.has_coordinate:
        current = LocationPoint(latitude=loc.latitude, longitude=loc.longitude, accuracy=loc.accuracy)

    return LocationHistoryResponse(
        current_location=current,
        last_updated=loc.last_updated_at if loc else None,
        sharing_enabled=bool(loc.is_sharing) if loc else False,
        days=days,
    )
