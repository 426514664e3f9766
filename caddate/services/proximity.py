from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Any, List, Optional, Tuple

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from caddate.core.geo import haversine_m, round_meters
from caddate.core.location_config import (
    DEFAULT_LIMIT,
    DEFAULT_RADIUS_METERS,
    FRESHNESS_WINDOW_MINUTES,
    MAX_LIMIT,
    MAX_RADIUS_METERS,
    MIN_LIMIT,
    MIN_RADIUS_METERS,
)
from caddate.core.time import utcnow
from caddate.models.location import UserLocation
from caddate.models.user import User
from caddate.schemas.location import LocationPoint, NearbyResponse, NearbyUser

STATUS_OK = "ok"
STATUS_SHARING_DISABLED = "sharing_disabled"
STATUS_NO_LOCATION = "no_location"


# ------------------------------------------------------------------
# Utils
# ------------------------------------------------------------------

def _as_number(value: Any) -> Optional[float]:
    # None and NaN fall back to the defaults; infinities clamp
    if value is None or isinstance(value, bool):
        return None
    try:
        f = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(f) else f


def clamp_radius(radius: Any) -> float:
    r = _as_number(radius)
    if r is None:
        r = float(DEFAULT_RADIUS_METERS)
    return min(max(r, float(MIN_RADIUS_METERS)), float(MAX_RADIUS_METERS))


def clamp_limit(limit: Any) -> int:
    n = _as_number(limit)
    if n is None:
        return DEFAULT_LIMIT
    return int(min(max(n, float(MIN_LIMIT)), float(MAX_LIMIT)))


def _candidates(
    db: Session,
    requester_id: str,
    fresh_after: datetime,
) -> List[Tuple[UserLocation, User]]:
    # Full scan over fresh sharers. Fine at current scale; a grid/quad-tree
    # bucket lookup would slot in here for large populations.
    stmt = (
        select(UserLocation, User)
        .join(User, User.id == UserLocation.user_id)
        .where(
            UserLocation.is_sharing.is_(True),
            UserLocation.latitude.is_not(None),
            UserLocation.longitude.is_not(None),
            UserLocation.last_updated_at >= fresh_after,
            UserLocation.user_id != requester_id,
            User.is_active.is_(True),
            User.deleted_at.is_(None),
        )
    )
    return [(row[0], row[1]) for row in db.execute(stmt).all()]


# ------------------------------------------------------------------
# NEARBY
# ------------------------------------------------------------------

def find_nearby(
    db: Session,
    requester_id: str,
    radius_m: Any = None,
    limit: Any = None,
    now: Optional[datetime] = None,
) -> NearbyResponse:
    radius = clamp_radius(radius_m)
    n = clamp_limit(limit)
    now = now or utcnow()

    me = db.get(UserLocation, requester_id)
    if me is None or not me.has_coordinate:
        return NearbyResponse(
            radius=radius,
            limit=n,
            status=STATUS_NO_LOCATION,
            message="No location on record",
        )
    if not me.is_sharing:
        return NearbyResponse(
            radius=radius,
            limit=n,
            status=STATUS_SHARING_DISABLED,
            message="Location sharing is off",
        )

    fresh_after = now - timedelta(minutes=FRESHNESS_WINDOW_MINUTES)
    rows = _candidates(db, requester_id, fresh_after)

    # distance filter first
    in_radius: List[Tuple[float, UserLocation, User]] = []
    for loc, user in rows:
        distance = haversine_m(me.latitude, me.longitude, loc.latitude, loc.longitude)
        if distance <= radius:
            in_radius.append((distance, loc, user))

    in_radius.sort(key=lambda t: (t[0], t[1].user_id))

    users = [
        NearbyUser(
            user_id=loc.user_id,
            first_name=user.first_name,
            last_name=user.last_name,
            profile_picture=user.profile_picture,
            location=LocationPoint(
                latitude=loc.latitude,
                longitude=loc.longitude,
                accuracy=loc.accuracy,
            ),
            last_seen=loc.last_updated_at,
            distance_meters=round_meters(distance),
        )
        for distance, loc, user in in_radius[:n]
    ]

    logger.debug(
        f"Nearby query | user={requester_id} radius={radius} limit={n} "
        f"candidates={len(rows)} in_radius={len(in_radius)} returned={len(users)}"
    )

    return NearbyResponse(users=users, total=len(users), radius=radius, limit=n)
