from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Set


class ConnectionState(str, Enum):
    connecting = "connecting"
    authenticating = "authenticating"
    connected = "connected"
    disconnected = "disconnected"


_ALLOWED = {
    ConnectionState.connecting: {ConnectionState.authenticating, ConnectionState.disconnected},
    ConnectionState.authenticating: {ConnectionState.connected, ConnectionState.disconnected},
    ConnectionState.connected: {ConnectionState.disconnected},
    ConnectionState.disconnected: set(),
}


class InvalidTransition(RuntimeError):
    pass


@dataclass
class Connection:
    connection_id: str
    state: ConnectionState = ConnectionState.connecting
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    rooms: Set[str] = field(default_factory=set)
    close_reason: Optional[str] = None

    def transition(self, target: ConnectionState) -> None:
        if target not in _ALLOWED[self.state]:
            raise InvalidTransition(f"{self.connection_id}: {self.state.value} -> {target.value}")
        self.state = target

    def close(self, reason: str) -> None:
        # closing twice (transport event after an eviction) is harmless
        if self.state is ConnectionState.disconnected:
            return
        self.transition(ConnectionState.disconnected)
        self.close_reason = reason
        self.rooms.clear()

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.connected
