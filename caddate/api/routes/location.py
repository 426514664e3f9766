from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger
from sqlalchemy.orm import Session

from caddate.core.auth import get_current_user_id
from caddate.core.db import get_db
from caddate.core.errors import CaddateError
from caddate.schemas.location import (
    LocationHistoryResponse,
    LocationSettingsResponse,
    LocationSettingsUpdate,
    LocationSnapshot,
    LocationUpdateRequest,
    NearbyResponse,
    StatusResponse,
)
from caddate.services import location_store
from caddate.services.proximity import find_nearby

router = APIRouter(prefix="/location", tags=["location"])


def _http_error(e: CaddateError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.to_detail())


# ----------------------------
# UPDATE
# ----------------------------
@router.post("", response_model=LocationSnapshot)
def update_location(
    payload: LocationUpdateRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    try:
        loc = location_store.update_location(
            db,
            user_id,
            payload.latitude,
            payload.longitude,
            accuracy=payload.accuracy,
            is_sharing=payload.is_sharing,
        )
    except CaddateError as e:
        logger.info(f"Location update rejected | user={user_id} status={e.status_code} reason={e.message}")
        raise _http_error(e)

    return LocationSnapshot.model_validate(loc)


# ----------------------------
# NEARBY
# ----------------------------
@router.get("/nearby", response_model=NearbyResponse)
def nearby_users(
    radius: Optional[float] = Query(default=None),
    limit: Optional[int] = Query(default=None),
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return find_nearby(db, user_id, radius, limit)


# ----------------------------
# HISTORY
# ----------------------------
@router.get("/history", response_model=LocationHistoryResponse)
def location_history(
    days: int = Query(default=7, ge=1, le=365),
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    try:
        return location_store.get_history(db, user_id, days)
    except CaddateError as e:
        raise _http_error(e)


# ----------------------------
# STOP
# ----------------------------
@router.post("/stop", response_model=StatusResponse)
def stop_location_sharing(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    try:
        location_store.stop_sharing(db, user_id)
    except CaddateError as e:
        raise _http_error(e)

    return StatusResponse(status="ok", message="Location sharing stopped")


# ----------------------------
# SETTINGS
# ----------------------------
@router.get("/settings", response_model=LocationSettingsResponse)
def get_location_settings(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    try:
        return location_store.get_settings(db, user_id)
    except CaddateError as e:
        raise _http_error(e)


@router.put("/settings", response_model=LocationSettingsResponse)
def put_location_settings(
    payload: LocationSettingsUpdate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    try:
        return location_store.update_settings(
            db,
            user_id,
            is_sharing=payload.is_sharing,
            privacy=payload.privacy,
        )
    except CaddateError as e:
        raise _http_error(e)
