"""
Socket message contract.

Client -> server messages form a closed set, discriminated on `event`, so the
hub can route them with one exhaustive handler instead of per-name callbacks.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from caddate.core.errors import ValidationError
from caddate.core.location_config import DEFAULT_ROOM

# ---------------------------
# Server -> client events
# ---------------------------

CONNECTION_STATUS = "connection_status"
ONLINE_USERS_LIST = "online_users_list"
USER_JOINED = "user_joined"
USER_LEFT = "user_left"
USER_LOCATION_UPDATE = "user_location_update"
NEARBY_USERS_LIST = "nearby_users_list"
USER_STATUS_UPDATED = "user_status_updated"
REQUEST_ERROR = "request_error"


# ---------------------------
# Client -> server messages
# ---------------------------

class LocationUpdateMessage(BaseModel):
    event: Literal["location_update"] = "location_update"
    latitude: float
    longitude: float
    accuracy: Optional[float] = Field(default=None)
    room: str = DEFAULT_ROOM


class RequestNearbyMessage(BaseModel):
    event: Literal["request_nearby_users"] = "request_nearby_users"
    radius: Optional[float] = None
    limit: Optional[float] = None


class JoinRoomMessage(BaseModel):
    event: Literal["join_room"] = "join_room"
    room: str = Field(min_length=1, max_length=128)


class LeaveRoomMessage(BaseModel):
    event: Literal["leave_room"] = "leave_room"
    room: str = Field(min_length=1, max_length=128)


class UpdateStatusMessage(BaseModel):
    event: Literal["update_user_status"] = "update_user_status"
    # free-form label such as "online", "away" or "busy"
    status: str = Field(min_length=1, max_length=32)


ClientMessage = Annotated[
    Union[
        LocationUpdateMessage,
        RequestNearbyMessage,
        JoinRoomMessage,
        LeaveRoomMessage,
        UpdateStatusMessage,
    ],
    Field(discriminator="event"),
]

CLIENT_EVENTS = (
    "location_update",
    "request_nearby_users",
    "join_room",
    "leave_room",
    "update_user_status",
)

_adapter = TypeAdapter(ClientMessage)


def _normalize(event: str, data: Any) -> dict:
    if data is None:
        return {}
    if event in ("join_room", "leave_room") and isinstance(data, str):
        return {"room": data}
    if event == "update_user_status" and isinstance(data, str):
        return {"status": data}
    if not isinstance(data, dict):
        raise ValidationError("payload", "must be an object")

    payload = dict(data)
    # mobile clients send {"location": {...}, "timestamp": ...}
    nested = payload.pop("location", None)
    if event == "location_update" and isinstance(nested, dict):
        for key in ("latitude", "longitude", "accuracy"):
            if key in nested and key not in payload:
                payload[key] = nested[key]
    payload.pop("timestamp", None)
    return payload


def parse_client_message(event: str, data: Any) -> ClientMessage:
    if event not in CLIENT_EVENTS:
        raise ValidationError("event", f"unknown event '{event}'")

    payload = _normalize(event, data)
    payload["event"] = event
    try:
        return _adapter.validate_python(payload)
    except PydanticValidationError as e:
        first = e.errors()[0]
        loc = [str(p) for p in first.get("loc", ()) if p != event]
        field = ".".join(loc) or "payload"
        raise ValidationError(field, first.get("msg", "invalid value"))
