from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from caddate.core.geo import haversine_m, round_meters
from caddate.core.location_config import CLIENT_NEARBY_RADIUS_METERS, FRESHNESS_WINDOW_MINUTES
from caddate.core.time import utcnow


@dataclass
class NearbyEntry:
    user_id: str
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    distance_meters: int = 0
    last_seen: Optional[str] = None
    seen_at: Optional[datetime] = None
    profile: Dict[str, Any] = field(default_factory=dict)


def _parse_seen(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


class NearbyUsers:
    """
    Client-side view of who is around, fed by snapshots and live pushes.

    Nobody announces that they stopped sharing, so an entry only stays while
    its last fix is inside the same freshness window the server applies.
    """

    def __init__(
        self,
        radius_m: float = CLIENT_NEARBY_RADIUS_METERS,
        self_user_id: Optional[str] = None,
        freshness_window: timedelta = timedelta(minutes=FRESHNESS_WINDOW_MINUTES),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.radius_m = float(radius_m)
        self.self_user_id = self_user_id
        self.freshness_window = freshness_window
        self._clock = clock
        self._origin: Optional[tuple[float, float]] = None
        self._entries: Dict[str, NearbyEntry] = {}

    @property
    def origin(self) -> Optional[tuple[float, float]]:
        return self._origin

    def set_origin(self, latitude: float, longitude: float) -> None:
        self._origin = (latitude, longitude)
        self._evict_stale()
        for user_id in list(self._entries):
            entry = self._entries[user_id]
            if not self._place(entry):
                del self._entries[user_id]

    def _place(self, entry: NearbyEntry) -> bool:
        if self._origin is None:
            return False
        d = haversine_m(self._origin[0], self._origin[1], entry.latitude, entry.longitude)
        if d > self.radius_m:
            return False
        entry.distance_meters = round_meters(d)
        return True

    def _stamp(self, entry: NearbyEntry) -> None:
        # pushes without a parseable timestamp count as seen now
        entry.seen_at = _parse_seen(entry.last_seen) or self._clock()

    def _is_stale(self, entry: NearbyEntry, cutoff: Optional[datetime] = None) -> bool:
        if cutoff is None:
            cutoff = self._clock() - self.freshness_window
        return entry.seen_at is not None and entry.seen_at < cutoff

    def _evict_stale(self) -> None:
        cutoff = self._clock() - self.freshness_window
        stale = [uid for uid, e in self._entries.items() if self._is_stale(e, cutoff)]
        for user_id in stale:
            del self._entries[user_id]
        if stale:
            logger.debug(f"Stale nearby entries dropped: {stale}")

    def replace(self, payload: Dict[str, Any]) -> None:
        """Apply a `nearby_users_list` snapshot from the server."""
        self._entries.clear()
        for u in payload.get("users") or []:
            loc = u.get("location") or {}
            try:
                entry = NearbyEntry(
                    user_id=str(u["user_id"]),
                    latitude=float(loc["latitude"]),
                    longitude=float(loc["longitude"]),
                    accuracy=loc.get("accuracy"),
                    distance_meters=int(u.get("distance_meters") or 0),
                    last_seen=u.get("last_seen"),
                    profile={k: u.get(k) for k in ("first_name", "last_name", "profile_picture") if u.get(k)},
                )
            except (KeyError, TypeError, ValueError):
                logger.warning(f"Malformed nearby entry skipped: {u}")
                continue
            if entry.user_id == self.self_user_id:
                continue
            self._stamp(entry)
            # the server already measured from our stored position
            if self._origin is None or self._place(entry):
                self._entries[entry.user_id] = entry
        self._evict_stale()

    def merge_update(self, payload: Dict[str, Any]) -> bool:
        """Apply a `user_location_update` push. Returns True if the user is (still) nearby."""
        user_id = payload.get("user_id")
        loc = payload.get("location") or {}
        if not user_id or user_id == self.self_user_id:
            return False
        try:
            lat = float(loc["latitude"])
            lng = float(loc["longitude"])
        except (KeyError, TypeError, ValueError):
            logger.warning(f"Malformed location push ignored: {payload}")
            return False

        existing = self._entries.get(user_id)
        entry = NearbyEntry(
            user_id=str(user_id),
            latitude=lat,
            longitude=lng,
            accuracy=loc.get("accuracy"),
            last_seen=payload.get("timestamp"),
            profile=existing.profile if existing else {},
        )
        self._stamp(entry)
        if not self._is_stale(entry) and self._place(entry):
            self._entries[entry.user_id] = entry
            return True

        self._entries.pop(entry.user_id, None)
        return False

    def remove(self, user_id: str) -> None:
        self._entries.pop(user_id, None)

    def users(self) -> List[NearbyEntry]:
        self._evict_stale()
        return sorted(self._entries.values(), key=lambda e: (e.distance_meters, e.user_id))

    def __len__(self) -> int:
        self._evict_stale()
        return len(self._entries)

    def __contains__(self, user_id: object) -> bool:
        self._evict_stale()
        return user_id in self._entries
