"""
Realtime presence and location fan-out.

The hub owns the per-connection state machines and talks to sockets only
through a small `Transport`, so the same logic runs behind python-socketio in
production and behind an in-memory fake in tests.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, Optional, Protocol

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from caddate.core.auth import decode_access_token
from caddate.core.errors import AuthError, CaddateError, InternalError, ValidationError
from caddate.core.location_config import DEFAULT_ROOM
from caddate.core.time import utcnow
from caddate.realtime.connection import Connection, ConnectionState
from caddate.realtime.messages import (
    CONNECTION_STATUS,
    NEARBY_USERS_LIST,
    ONLINE_USERS_LIST,
    REQUEST_ERROR,
    USER_JOINED,
    USER_LEFT,
    USER_LOCATION_UPDATE,
    USER_STATUS_UPDATED,
    JoinRoomMessage,
    LeaveRoomMessage,
    LocationUpdateMessage,
    RequestNearbyMessage,
    UpdateStatusMessage,
    parse_client_message,
)
from caddate.realtime.presence import PresenceEntry, PresenceRegistry
from caddate.services.location_store import get_location, validate_coordinates
from caddate.services.proximity import find_nearby


class Transport(Protocol):
    async def emit(
        self,
        event: str,
        data: Any,
        *,
        to: Optional[str] = None,
        room: Optional[str] = None,
        skip: Optional[str] = None,
    ) -> None: ...

    async def enter_room(self, connection_id: str, room: str) -> None: ...

    async def leave_room(self, connection_id: str, room: str) -> None: ...

    async def disconnect(self, connection_id: str) -> None: ...


class RealtimeHub:
    def __init__(
        self,
        transport: Transport,
        registry: PresenceRegistry,
        session_factory: Callable[[], Any],
        default_room: str = DEFAULT_ROOM,
        verify_token: Callable[[Optional[str]], Dict[str, Any]] = decode_access_token,
        clock: Callable[[], Any] = utcnow,
    ) -> None:
        self.transport = transport
        self.registry = registry
        self.default_room = default_room
        self._session_factory = session_factory
        self._verify_token = verify_token
        self._clock = clock
        self._connections: Dict[str, Connection] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def get_connection(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    async def connect(self, connection_id: str, token: Optional[str]) -> Connection:
        """Authenticate and register. Raises AuthError on a bad token."""
        conn = Connection(connection_id=connection_id)
        conn.transition(ConnectionState.authenticating)

        try:
            claims = self._verify_token(token)
        except AuthError as e:
            conn.close(f"auth: {e.message}")
            logger.warning(f"Socket refused | sid={connection_id} reason={e.message}")
            raise

        conn.user_id = claims["sub"]
        conn.user_email = claims.get("email")
        conn.transition(ConnectionState.connected)
        self._connections[connection_id] = conn

        self.registry.add(
            PresenceEntry(
                user_id=conn.user_id,
                connection_id=connection_id,
                user_email=conn.user_email,
                joined_at=self._clock(),
            )
        )
        await self.transport.enter_room(connection_id, self.default_room)
        conn.rooms.add(self.default_room)

        logger.info(f"User connected | user={conn.user_id} email={conn.user_email} sid={connection_id} online={len(self.registry)}")
        return conn

    async def announce(self, connection_id: str) -> None:
        """Greet a freshly connected socket and tell the room about it."""
        conn = self._connections.get(connection_id)
        if conn is None or not conn.is_connected:
            return

        entry = self.registry.get(connection_id)
        snapshot = self._online_payload()

        await self.transport.emit(CONNECTION_STATUS, {"connected": True}, to=connection_id)
        await self.transport.emit(ONLINE_USERS_LIST, snapshot, to=connection_id)

        if entry is not None:
            await self.transport.emit(USER_JOINED, entry.to_dict(), room=self.default_room, skip=connection_id)
        await self.transport.emit(ONLINE_USERS_LIST, snapshot, room=self.default_room, skip=connection_id)

    async def disconnect(self, connection_id: str, reason: str = "transport close") -> None:
        conn = self._connections.pop(connection_id, None)
        if conn is None:
            return

        entry = self.registry.remove(connection_id)
        conn.close(reason)

        logger.info(f"User disconnected | user={conn.user_id} sid={connection_id} reason={reason} online={len(self.registry)}")

        left = entry.to_dict() if entry else {"user_id": conn.user_id, "socket_id": connection_id}
        await self.transport.emit(USER_LEFT, left, room=self.default_room, skip=connection_id)
        await self.transport.emit(ONLINE_USERS_LIST, self._online_payload(), room=self.default_room, skip=connection_id)

    async def evict_user(self, user_id: str, reason: str = "server eviction") -> int:
        sids = self.registry.connections_for(user_id)
        for sid in sids:
            await self.transport.disconnect(sid)
            await self.disconnect(sid, reason)
        return len(sids)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def dispatch(self, connection_id: str, event: str, data: Any) -> None:
        conn = self._connections.get(connection_id)
        if conn is None or not conn.is_connected:
            logger.warning(f"Message from unknown socket dropped | sid={connection_id} event={event}")
            return

        try:
            message = parse_client_message(event, data)
            await self.handle(conn, message)
        except CaddateError as e:
            logger.info(f"Socket request rejected | user={conn.user_id} event={event} reason={e.message}")
            await self.transport.emit(REQUEST_ERROR, {"event": event, **e.to_detail()}, to=connection_id)

    async def handle(self, conn: Connection, message: Any) -> None:
        if isinstance(message, LocationUpdateMessage):
            await self._on_location_update(conn, message)
        elif isinstance(message, RequestNearbyMessage):
            await self._on_request_nearby(conn, message)
        elif isinstance(message, JoinRoomMessage):
            await self._on_join_room(conn, message)
        elif isinstance(message, LeaveRoomMessage):
            await self._on_leave_room(conn, message)
        elif isinstance(message, UpdateStatusMessage):
            await self._on_update_status(conn, message)
        else:
            raise TypeError(f"Unhandled message type: {type(message).__name__}")

    async def _on_location_update(self, conn: Connection, msg: LocationUpdateMessage) -> None:
        lat, lng, acc = validate_coordinates(msg.latitude, msg.longitude, msg.accuracy)

        if msg.room not in conn.rooms:
            raise ValidationError("room", f"not a member of '{msg.room}'")

        sharing = await asyncio.to_thread(self._sharing_flag, conn.user_id)
        if sharing is False:
            raise ValidationError("is_sharing", "location sharing is off")

        payload = {
            "user_id": conn.user_id,
            "user_email": conn.user_email,
            "location": {"latitude": lat, "longitude": lng, "accuracy": acc},
            "timestamp": self._clock().isoformat(),
        }
        await self.transport.emit(USER_LOCATION_UPDATE, payload, room=msg.room, skip=conn.connection_id)

    async def _on_request_nearby(self, conn: Connection, msg: RequestNearbyMessage) -> None:
        result = await asyncio.to_thread(self._nearby, conn.user_id, msg.radius, msg.limit)
        await self.transport.emit(NEARBY_USERS_LIST, result, to=conn.connection_id)

    async def _on_join_room(self, conn: Connection, msg: JoinRoomMessage) -> None:
        if msg.room in conn.rooms:
            return
        await self.transport.enter_room(conn.connection_id, msg.room)
        conn.rooms.add(msg.room)
        logger.debug(f"Room joined | user={conn.user_id} room={msg.room}")

    async def _on_leave_room(self, conn: Connection, msg: LeaveRoomMessage) -> None:
        if msg.room == self.default_room:
            raise ValidationError("room", "cannot leave the default room")
        if msg.room not in conn.rooms:
            return
        await self.transport.leave_room(conn.connection_id, msg.room)
        conn.rooms.discard(msg.room)
        logger.debug(f"Room left | user={conn.user_id} room={msg.room}")

    async def _on_update_status(self, conn: Connection, msg: UpdateStatusMessage) -> None:
        payload = {
            "user_id": conn.user_id,
            "user_email": conn.user_email,
            "status": msg.status,
            "timestamp": self._clock().isoformat(),
        }
        logger.debug(f"Status updated | user={conn.user_id} status={msg.status}")
        await self.transport.emit(USER_STATUS_UPDATED, payload, room=self.default_room, skip=conn.connection_id)

    # ------------------------------------------------------------------
    # Helpers (run in worker threads)
    # ------------------------------------------------------------------

    def _sharing_flag(self, user_id: str) -> Optional[bool]:
        # None when nothing is stored yet; the REST write may still be in flight
        db = self._session_factory()
        try:
            loc = get_location(db, user_id)
            return None if loc is None else bool(loc.is_sharing)
        except SQLAlchemyError:
            logger.exception(f"Sharing lookup failed | user={user_id}")
            raise InternalError("Sharing lookup failed")
        finally:
            db.close()

    def _nearby(self, user_id: str, radius: Any, limit: Any) -> dict:
        db = self._session_factory()
        try:
            return find_nearby(db, user_id, radius, limit).model_dump(mode="json")
        except SQLAlchemyError:
            logger.exception(f"Nearby lookup failed | user={user_id}")
            raise InternalError("Nearby lookup failed")
        finally:
            db.close()

    def _online_payload(self) -> dict:
        users = self.registry.snapshot()
        return {"users": users, "total": len(users)}
