"""
Process-local registry of live socket connections.

One entry per connection, not per user: a user on two devices shows up twice.
The registry is created by whoever owns the socket server and handed to the
hub, so tests and multiple server instances each get their own table.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from caddate.core.time import utcnow


@dataclass(frozen=True)
class PresenceEntry:
    user_id: str
    connection_id: str
    user_email: Optional[str] = None
    joined_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "user_email": self.user_email,
            "socket_id": self.connection_id,
            "joined_at": self.joined_at.isoformat(),
        }


class PresenceRegistry:
    def __init__(self) -> None:
        self._entries: Dict[str, PresenceEntry] = {}
        # handlers may run on the event loop and in worker threads
        self._lock = threading.Lock()

    def add(self, entry: PresenceEntry) -> None:
        with self._lock:
            self._entries[entry.connection_id] = entry

    def remove(self, connection_id: str) -> Optional[PresenceEntry]:
        with self._lock:
            return self._entries.pop(connection_id, None)

    def get(self, connection_id: str) -> Optional[PresenceEntry]:
        with self._lock:
            return self._entries.get(connection_id)

    def list_online(self) -> List[PresenceEntry]:
        with self._lock:
            entries = list(self._entries.values())
        return sorted(entries, key=lambda e: (e.joined_at, e.connection_id))

    def connections_for(self, user_id: str) -> List[str]:
        with self._lock:
            return [e.connection_id for e in self._entries.values() if e.user_id == user_id]

    def snapshot(self) -> List[dict]:
        return [e.to_dict() for e in self.list_online()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, connection_id: object) -> bool:
        with self._lock:
            return connection_id in self._entries
