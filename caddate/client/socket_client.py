from __future__ import annotations

from typing import Any, Dict, List, Optional

import socketio
from socketio import exceptions as sio_errors
from loguru import logger

from caddate.client.nearby import NearbyUsers
from caddate.client.providers import Position
from caddate.core.errors import TransientIOError
from caddate.core.location_config import (
    CLIENT_NEARBY_LIMIT,
    CLIENT_NEARBY_RADIUS_METERS,
    DEFAULT_ROOM,
)
from caddate.realtime.messages import (
    CONNECTION_STATUS,
    NEARBY_USERS_LIST,
    ONLINE_USERS_LIST,
    REQUEST_ERROR,
    USER_JOINED,
    USER_LEFT,
    USER_LOCATION_UPDATE,
    USER_STATUS_UPDATED,
)


class RealtimeClient:
    """Socket side of the location contract, wrapping a python-socketio AsyncClient."""

    def __init__(
        self,
        url: str,
        token: str,
        nearby: Optional[NearbyUsers] = None,
        sio: Optional[socketio.AsyncClient] = None,
    ) -> None:
        self.url = url
        self._token = token
        self.nearby = nearby if nearby is not None else NearbyUsers()
        self.sio = sio if sio is not None else socketio.AsyncClient(reconnection=True)
        self.online: List[Dict[str, Any]] = []
        self.last_error: Optional[Dict[str, Any]] = None
        # latest status label per user, e.g. "online" or "away"
        self.statuses: Dict[str, str] = {}

        self.sio.on(CONNECTION_STATUS, self._on_connection_status)
        self.sio.on(ONLINE_USERS_LIST, self._on_online_users)
        self.sio.on(USER_JOINED, self._on_user_joined)
        self.sio.on(USER_LEFT, self._on_user_left)
        self.sio.on(USER_LOCATION_UPDATE, self._on_user_location_update)
        self.sio.on(NEARBY_USERS_LIST, self._on_nearby_users)
        self.sio.on(USER_STATUS_UPDATED, self._on_user_status_updated)
        self.sio.on(REQUEST_ERROR, self._on_request_error)

    @property
    def connected(self) -> bool:
        return bool(self.sio.connected)

    async def connect(self) -> None:
        try:
            await self.sio.connect(
                self.url,
                auth={"token": self._token},
                transports=["websocket", "polling"],
            )
        except sio_errors.ConnectionError as e:
            raise TransientIOError(f"Socket connect failed: {e}") from e
        logger.info(f"Socket connected | url={self.url} sid={self.sio.sid}")

    async def disconnect(self) -> None:
        if self.sio.connected:
            await self.sio.disconnect()

    async def _emit(self, event: str, data: Dict[str, Any]) -> None:
        if not self.sio.connected:
            raise TransientIOError(f"Socket not connected, {event} not sent")
        try:
            await self.sio.emit(event, data)
        except sio_errors.SocketIOError as e:
            raise TransientIOError(f"{event} failed: {e}") from e

    # ---------------------------
    # Outgoing
    # ---------------------------

    async def send_location(self, position: Position, room: str = DEFAULT_ROOM) -> None:
        payload = position.as_payload()
        payload["room"] = room
        await self._emit("location_update", payload)

    async def request_nearby(
        self,
        radius: float = CLIENT_NEARBY_RADIUS_METERS,
        limit: int = CLIENT_NEARBY_LIMIT,
    ) -> None:
        await self._emit("request_nearby_users", {"radius": radius, "limit": limit})

    async def join_room(self, room: str) -> None:
        await self._emit("join_room", {"room": room})

    async def leave_room(self, room: str) -> None:
        await self._emit("leave_room", {"room": room})

    async def update_status(self, status: str) -> None:
        await self._emit("update_user_status", {"status": status})

    # ---------------------------
    # Incoming
    # ---------------------------

    async def _on_connection_status(self, data: Dict[str, Any]) -> None:
        logger.debug(f"Connection status: {data}")

    async def _on_online_users(self, data: Dict[str, Any]) -> None:
        self.online = list(data.get("users") or [])

    async def _on_user_joined(self, data: Dict[str, Any]) -> None:
        logger.debug(f"User joined: {data.get('user_id')}")

    async def _on_user_left(self, data: Dict[str, Any]) -> None:
        user_id = data.get("user_id")
        # another device of the same user may still be online
        if user_id and not any(u.get("user_id") == user_id and u.get("socket_id") != data.get("socket_id") for u in self.online):
            self.nearby.remove(user_id)
            self.statuses.pop(user_id, None)

    async def _on_user_location_update(self, data: Dict[str, Any]) -> None:
        self.nearby.merge_update(data)

    async def _on_nearby_users(self, data: Dict[str, Any]) -> None:
        self.nearby.replace(data)

    async def _on_user_status_updated(self, data: Dict[str, Any]) -> None:
        user_id = data.get("user_id")
        if user_id and data.get("status"):
            self.statuses[user_id] = str(data["status"])

    async def _on_request_error(self, data: Dict[str, Any]) -> None:
        self.last_error = data
        logger.warning(f"Server rejected {data.get('event')}: {data.get('message')}")
