from __future__ import annotations

from typing import Any, Callable, Optional

import socketio
from loguru import logger
from socketio.exceptions import ConnectionRefusedError as HandshakeRefused

from caddate.core.config import CORS_ORIGINS
from caddate.core.db import SessionLocal
from caddate.core.errors import AuthError
from caddate.realtime.hub import RealtimeHub
from caddate.realtime.messages import CLIENT_EVENTS
from caddate.realtime.presence import PresenceRegistry


class SocketIOTransport:
    """`Transport` backed by a python-socketio AsyncServer."""

    def __init__(self, sio: socketio.AsyncServer) -> None:
        self.sio = sio

    async def emit(self, event, data, *, to=None, room=None, skip=None) -> None:
        await self.sio.emit(event, data, to=to, room=room, skip_sid=skip)

    async def enter_room(self, connection_id: str, room: str) -> None:
        await self.sio.enter_room(connection_id, room)

    async def leave_room(self, connection_id: str, room: str) -> None:
        await self.sio.leave_room(connection_id, room)

    async def disconnect(self, connection_id: str) -> None:
        await self.sio.disconnect(connection_id)


def extract_token(environ: dict, auth: Any) -> Optional[str]:
    # socket.io clients send {auth: {token}}; plain clients may use the header
    if isinstance(auth, dict) and auth.get("token"):
        return str(auth["token"])

    header = environ.get("HTTP_AUTHORIZATION") or ""
    parts = header.split(" ", 1)
    if len(parts) == 2 and parts[0].lower() == "bearer" and parts[1].strip():
        return parts[1].strip()
    return None


class SocketServer:
    def __init__(
        self,
        session_factory: Callable[[], Any] = SessionLocal,
        registry: Optional[PresenceRegistry] = None,
    ) -> None:
        cors = "*" if CORS_ORIGINS == ["*"] else CORS_ORIGINS
        self.sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=cors)
        self.registry = registry if registry is not None else PresenceRegistry()
        self.hub = RealtimeHub(SocketIOTransport(self.sio), self.registry, session_factory)
        self._register_handlers()

    def asgi_app(self, other_asgi_app=None) -> socketio.ASGIApp:
        return socketio.ASGIApp(self.sio, other_asgi_app=other_asgi_app)

    def _register_handlers(self) -> None:
        sio = self.sio
        hub = self.hub

        @sio.event
        async def connect(sid, environ, auth=None):
            try:
                await hub.connect(sid, extract_token(environ, auth))
            except AuthError as e:
                raise HandshakeRefused(f"Authentication error: {e.message}")
            # greet after the handshake completes so the client sees the events
            sio.start_background_task(hub.announce, sid)

        @sio.event
        async def disconnect(sid, reason=None):
            await hub.disconnect(sid, str(reason) if reason else "transport close")

        for name in CLIENT_EVENTS:
            sio.on(name, handler=self._event_handler(name))

        logger.info(f"Socket.IO handlers registered | events={list(CLIENT_EVENTS)}")

    def _event_handler(self, name: str):
        async def handler(sid, data=None):
            await self.hub.dispatch(sid, name, data)

        return handler
