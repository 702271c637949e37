"""
Position sources for a trip session.

Two interchangeable producers of fixes: GpsSource wraps a device location
watch, SimulationSource synthesizes a drifting position on a timer. Both
call ``on_fix(Coordinates)`` while running and nothing after ``stop()``.
"""

import asyncio
import enum
import logging
import random
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Protocol

from roadhive.app.core.config import settings
from roadhive.app.domain.trip.geo import kmh_to_ms
from roadhive.app.schemas.load import Coordinates

logger = logging.getLogger("roadhive.tracking.sources")

FixCallback = Callable[[Coordinates], None]
ErrorCallback = Callable[["GeolocationError"], None]

SIMULATION_JITTER_DEG = 0.001
SIMULATION_HEADING = 45.0
SIMULATION_MIN_KMH = 40.0
SIMULATION_MAX_KMH = 90.0


class GeolocationErrorCode(str, enum.Enum):
    UNSUPPORTED = "UNSUPPORTED"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    POSITION_UNAVAILABLE = "POSITION_UNAVAILABLE"
    TIMEOUT = "TIMEOUT"


class GeolocationError(Exception):
    """Acquisition failure. Terminal for the watch that raised it."""

    def __init__(self, code: GeolocationErrorCode, message: str = ""):
        self.code = GeolocationErrorCode(code)
        self.message = message or self.code.value
        super().__init__(self.message)


class LocationWatcher(Protocol):
    """Device primitive behind GpsSource."""

    def watch_position(self, on_position: FixCallback, on_error: ErrorCallback) -> Any:
        ...

    def clear_watch(self, handle: Any) -> None:
        ...


class GpsSource:
    """
    Fixes from a device location watch.

    Errors are not retried: the watch is cleared and the error handed to the
    caller, who decides whether to fall back to simulation.
    """

    def __init__(self, watcher: Optional[LocationWatcher]):
        self._watcher = watcher
        self._handle = None
        # Bumped on every stop so callbacks of a cleared watch are discarded
        self._generation = 0
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self, on_fix: FixCallback, on_error: ErrorCallback) -> None:
        if self._running:
            return
        if self._watcher is None:
            on_error(GeolocationError(GeolocationErrorCode.UNSUPPORTED, "GPS not supported"))
            return

        self._generation += 1
        generation = self._generation
        self._running = True

        def handle_position(fix: Coordinates):
            if generation == self._generation:
                on_fix(fix)

        def handle_error(error):
            if generation != self._generation:
                return
            if not isinstance(error, GeolocationError):
                error = GeolocationError(GeolocationErrorCode.POSITION_UNAVAILABLE, str(error))
            logger.warning("GPS watch failed: %s", error.code.value)
            self.stop()
            on_error(error)

        handle = self._watcher.watch_position(handle_position, handle_error)
        if generation != self._generation:
            # Failed or stopped while registering
            self._watcher.clear_watch(handle)
            return
        self._handle = handle

    def stop(self) -> None:
        self._generation += 1
        self._running = False
        if self._handle is not None:
            self._watcher.clear_watch(self._handle)
            self._handle = None


class SimulationSource:
    """
    Synthetic fixes on a fixed interval.

    Each tick nudges the last known position (or the pickup point) by up to
    0.001 degrees per axis, heading 45 degrees at 40-90 km/h.
    """

    def __init__(
        self,
        current_position: Callable[[], Optional[Coordinates]],
        pickup: Optional[Coordinates] = None,
        interval: Optional[float] = None,
        rng: Optional[random.Random] = None,
    ):
        self._current_position = current_position
        self._pickup = pickup
        self._interval = settings.simulation_interval_seconds if interval is None else interval
        self._rng = rng or random.Random()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, on_fix: FixCallback, on_error: Optional[ErrorCallback] = None) -> None:
        """Schedule the tick loop on the running event loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(on_fix))

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def next_fix(self) -> Optional[Coordinates]:
        last = self._current_position() or self._pickup
        if last is None:
            return None

        lat = min(90.0, last.lat + self._rng.random() * SIMULATION_JITTER_DEG)
        lng = last.lng + self._rng.random() * SIMULATION_JITTER_DEG
        if lng > 180.0:
            lng -= 360.0

        return Coordinates(
            lat=lat,
            lng=lng,
            heading=SIMULATION_HEADING,
            speed=kmh_to_ms(self._rng.uniform(SIMULATION_MIN_KMH, SIMULATION_MAX_KMH)),
            timestamp=datetime.now(timezone.utc),
        )

    async def _run(self, on_fix: FixCallback):
        while True:
            await asyncio.sleep(self._interval)
            fix = self.next_fix()
            if fix is None:
                continue
            on_fix(fix)
