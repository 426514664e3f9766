from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional, Protocol, Union

from caddate.core.errors import CaddateError, TransientIOError
from caddate.core.time import utcnow


@dataclass(frozen=True)
class Position:
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    timestamp: datetime = field(default_factory=utcnow)

    def as_payload(self) -> dict:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "accuracy": self.accuracy,
            "timestamp": self.timestamp.isoformat(),
        }


class PermissionDeniedError(CaddateError):
    pass


class LocationServicesDisabledError(CaddateError):
    """The OS reports location services off; sampling cannot recover on its own."""


class LocationUnavailableError(TransientIOError):
    pass


class LocationProvider(Protocol):
    async def request_permission(self) -> bool: ...

    async def current_position(self, max_age: float) -> Position: ...

    async def release(self) -> None: ...


class ScriptedLocationProvider:
    """
    Replays a fixed list of readings; handy for simulators and tests.

    Items may be a `Position` or an exception instance, which is raised in
    its turn. The last item repeats once the script runs out.
    """

    def __init__(
        self,
        script: Iterable[Union[Position, BaseException]],
        permission: bool = True,
    ) -> None:
        self._script: List[Union[Position, BaseException]] = list(script)
        self._permission = permission
        self._i = 0
        self.calls = 0
        self.released = False

    async def request_permission(self) -> bool:
        return self._permission

    async def current_position(self, max_age: float) -> Position:
        self.calls += 1
        if not self._script:
            raise LocationUnavailableError("No reading available")
        item = self._script[min(self._i, len(self._script) - 1)]
        self._i += 1
        if isinstance(item, BaseException):
            raise item
        return item

    async def release(self) -> None:
        self.released = True
