"""
Foreground location tracking loop.

A single asyncio task samples the device position on a fixed interval and,
while sharing is on, pushes each reading down two independent paths: the REST
write (persisted snapshot) and the socket publish (live fan-out). Each path
runs in its own task so a slow write on one never holds up sampling or the
other path. The loop task handle is the only record of whether tracking is
active.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional, Protocol

from loguru import logger

from caddate.client.nearby import NearbyUsers
from caddate.client.providers import (
    LocationProvider,
    LocationServicesDisabledError,
    PermissionDeniedError,
    Position,
)
from caddate.core.errors import CaddateError, TransientIOError, ValidationError
from caddate.core.location_config import (
    INITIAL_FIX_TIMEOUT_SECONDS,
    MAX_SAMPLE_AGE_SECONDS,
    SAMPLE_TIMEOUT_SECONDS,
    TRACKING_INTERVAL_SECONDS,
)
from caddate.services.location_store import validate_coordinates

PUBLISH_CHANNELS = ("rest", "realtime")

PERMISSION_NOTICE = "Location permission is required to show people nearby."
SERVICES_OFF_NOTICE = "Location services are turned off."


class TrackerState(str, Enum):
    stopped = "stopped"
    permission_pending = "permission_pending"
    tracking = "tracking"


class LocationSink(Protocol):
    async def update_location(self, position: Position) -> object: ...


class LocationPublisher(Protocol):
    async def send_location(self, position: Position) -> None: ...


class LocationTracker:
    def __init__(
        self,
        provider: LocationProvider,
        rest: LocationSink,
        realtime: LocationPublisher,
        sharing: bool = False,
        interval_seconds: float = TRACKING_INTERVAL_SECONDS,
        sample_timeout_seconds: float = SAMPLE_TIMEOUT_SECONDS,
        max_sample_age_seconds: float = MAX_SAMPLE_AGE_SECONDS,
        min_publish_interval_seconds: float = 0.0,
        max_accuracy_m: Optional[float] = None,
        nearby: Optional[NearbyUsers] = None,
        on_position: Optional[Callable[[Position], None]] = None,
    ) -> None:
        self.provider = provider
        self.rest = rest
        self.realtime = realtime
        self.sharing = sharing
        self.interval_seconds = interval_seconds
        self.sample_timeout_seconds = sample_timeout_seconds
        self.max_sample_age_seconds = max_sample_age_seconds
        self.min_publish_interval_seconds = min_publish_interval_seconds
        self.max_accuracy_m = max_accuracy_m
        self.nearby = nearby
        self.on_position = on_position

        self.state = TrackerState.stopped
        self.position: Optional[Position] = None
        # placeholder map when permission is refused
        self.degraded = False
        self.notice: Optional[str] = None
        self.skipped_samples = 0
        self.published: Dict[str, int] = {c: 0 for c in PUBLISH_CHANNELS}
        self.busy_skips: Dict[str, int] = {c: 0 for c in PUBLISH_CHANNELS}

        self._task: Optional[asyncio.Task] = None
        self._permission_settled: Optional[asyncio.Event] = None
        self._last_publish_at: Optional[float] = None
        self._inflight: Dict[str, asyncio.Task] = {}

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> TrackerState:
        """Ask for permission and begin ticking. A second call while active is a no-op."""
        if self.is_active:
            return self.state

        self.notice = None
        self._permission_settled = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name="location-tracker")
        self._task.add_done_callback(self._reap)
        await self._permission_settled.wait()
        return self.state

    async def stop(self) -> None:
        """Cancel the loop and any pending publishes, then release the provider."""
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._task = None
        await self._cancel_inflight()
        self.state = TrackerState.stopped
        logger.info("Location tracking stopped")

    def set_sharing(self, enabled: bool) -> None:
        # the loop keeps sampling for the local map either way
        self.sharing = bool(enabled)
        logger.info(f"Location sharing {'on' if self.sharing else 'off'}")

    async def fetch_initial_position(self) -> Optional[Position]:
        try:
            position = await asyncio.wait_for(
                self.provider.current_position(max_age=self.max_sample_age_seconds),
                timeout=INITIAL_FIX_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            logger.warning("Initial location fix timed out")
            return None
        except CaddateError as e:
            logger.warning(f"Initial location fix failed: {e.message}")
            return None
        self._accept(position)
        return position

    async def flush(self) -> None:
        """Wait for publishes already in flight."""
        pending = [t for t in self._inflight.values() if not t.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        try:
            self.state = TrackerState.permission_pending
            try:
                granted = await self.provider.request_permission()
            except (PermissionDeniedError, LocationServicesDisabledError) as e:
                logger.warning(f"Location permission request failed: {e.message}")
                granted = False

            if not granted:
                self.degraded = True
                self.notice = PERMISSION_NOTICE
                logger.warning("Location permission denied; map stays in placeholder mode")
                return

            self.degraded = False
            self.state = TrackerState.tracking
            self._permission_settled.set()
            logger.info(f"Location tracking started | interval={self.interval_seconds}s sharing={self.sharing}")

            while self.state is TrackerState.tracking:
                await self.tick()
                if self.state is not TrackerState.tracking:
                    break
                await asyncio.sleep(self.interval_seconds)
        finally:
            self.state = TrackerState.stopped
            if self._permission_settled is not None:
                self._permission_settled.set()
            await self.provider.release()

    def _reap(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error("Location tracker loop crashed")

    async def tick(self) -> Optional[Position]:
        """One sampling cycle. Returns the accepted reading, or None if skipped."""
        try:
            position = await asyncio.wait_for(
                self.provider.current_position(max_age=self.max_sample_age_seconds),
                timeout=self.sample_timeout_seconds,
            )
        except asyncio.TimeoutError:
            self.skipped_samples += 1
            logger.warning(f"Location sample timed out after {self.sample_timeout_seconds}s; skipping")
            return None
        except LocationServicesDisabledError:
            self.notice = SERVICES_OFF_NOTICE
            logger.warning("Location services disabled; stopping tracking")
            self.state = TrackerState.stopped
            return None
        except PermissionDeniedError:
            # revoked from system settings while the map was open
            self.degraded = True
            self.notice = PERMISSION_NOTICE
            logger.warning("Location permission revoked; stopping tracking")
            self.state = TrackerState.stopped
            return None
        except TransientIOError as e:
            self.skipped_samples += 1
            logger.warning(f"Location sample unavailable: {e.message}; skipping")
            return None
        except Exception:
            self.skipped_samples += 1
            logger.exception("Location provider failed; skipping sample")
            return None

        try:
            validate_coordinates(position.latitude, position.longitude, position.accuracy)
        except ValidationError as e:
            self.skipped_samples += 1
            logger.warning(f"Invalid location sample dropped: {e.message}")
            return None

        if self.max_accuracy_m is not None and position.accuracy is not None and position.accuracy > self.max_accuracy_m:
            self.skipped_samples += 1
            logger.debug(f"Low-accuracy sample dropped | accuracy={position.accuracy}")
            return None

        self._accept(position)

        if self.sharing and self._publish_due():
            self._publish(position)

        return position

    def _accept(self, position: Position) -> None:
        self.position = position
        if self.nearby is not None:
            self.nearby.set_origin(position.latitude, position.longitude)
        if self.on_position is not None:
            self.on_position(position)

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    def _publish_due(self) -> bool:
        if self.min_publish_interval_seconds <= 0 or self._last_publish_at is None:
            return True
        now = asyncio.get_running_loop().time()
        return now - self._last_publish_at >= self.min_publish_interval_seconds

    def _publish(self, position: Position) -> None:
        self._last_publish_at = asyncio.get_running_loop().time()
        senders: Dict[str, Callable[[Position], Awaitable[object]]] = {
            "rest": self.rest.update_location,
            "realtime": self.realtime.send_location,
        }
        for channel, send in senders.items():
            previous = self._inflight.get(channel)
            if previous is not None and not previous.done():
                # one call per path at a time; the next tick brings a newer fix
                self.busy_skips[channel] += 1
                logger.debug(f"Location {channel} publish still pending; skipping this sample")
                continue
            self._inflight[channel] = asyncio.create_task(
                self._send(channel, send, position),
                name=f"location-publish-{channel}",
            )

    async def _send(self, channel: str, send: Callable[[Position], Awaitable[object]], position: Position) -> None:
        try:
            await send(position)
        except CaddateError as e:
            logger.warning(f"Location {channel} publish failed: {e.message}")
            return
        except Exception:
            logger.exception(f"Location {channel} publish crashed")
            return
        self.published[channel] += 1

    async def _cancel_inflight(self) -> None:
        pending = [t for t in self._inflight.values() if not t.done()]
        for t in pending:
            t.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._inflight.clear()
