from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from caddate.schemas.base import BaseSchema


# ---------------------------
# Requests
# ---------------------------

class LocationUpdateRequest(BaseModel):
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    # client-side sample time; the server stamps its own clock
    timestamp: Optional[datetime] = None
    is_sharing: bool = True


class LocationSettingsUpdate(BaseModel):
    is_sharing: Optional[bool] = None
    privacy: Optional[Dict[str, Any]] = None


# ---------------------------
# Responses
# ---------------------------

class LocationPoint(BaseModel):
    latitude: float
    longitude: float
    accuracy: Optional[float] = None


class LocationSnapshot(BaseSchema):
    user_id: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    accuracy: Optional[float] = None
    is_sharing: bool
    last_updated_at: Optional[datetime] = None


class NearbyUser(BaseModel):
    user_id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_picture: Optional[str] = None
    location: LocationPoint
    last_seen: Optional[datetime] = None
    distance_meters: int


class NearbyResponse(BaseModel):
    users: List[NearbyUser] = Field(default_factory=list)
    total: int = 0
    radius: float
    limit: int
    status: str = "ok"
    message: Optional[str] = None


class LocationHistoryResponse(BaseModel):
    current_location: Optional[LocationPoint] = None
    last_updated: Optional[datetime] = None
    sharing_enabled: bool = False
    days: int


class LocationSettingsResponse(BaseModel):
    is_sharing: bool = False
    accuracy: Optional[float] = None
    last_updated_at: Optional[datetime] = None
    privacy: Dict[str, Any] = Field(default_factory=dict)


class StatusResponse(BaseModel):
    status: str
    message: Optional[str] = None
