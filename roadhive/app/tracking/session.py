"""
Trip session.

The single authoritative in-memory view of one trip for one participant:
the load, the active position source, the path history, progress, alerts
and the notices shown to the user. Local fixes and polled remote updates
are merged last-write-wins.

Every API failure is caught here and turned into a notice; nothing escapes
to abort the session.
"""

import asyncio
import logging
import random
from datetime import datetime, timezone
from typing import List, NamedTuple, Optional, Set

from roadhive.app.core.exceptions import InvalidTransitionError
from roadhive.app.domain.trip.alerts import Alert, BatteryStatus, compute_alerts, dismiss_alert
from roadhive.app.domain.trip.progress import TripProgress, compute_progress
from roadhive.app.domain.trip.state_machine import ensure_transition, is_trackable
from roadhive.app.domain.trip.tracking_mode import TrackingMode
from roadhive.app.models.load_enums import LoadStatus
from roadhive.app.schemas.load import Coordinates, LoadResponse
from roadhive.app.tracking.api_client import TripApiClient, TripApiError
from roadhive.app.tracking.sources import GeolocationError, GpsSource, LocationWatcher, SimulationSource
from roadhive.app.tracking.transport import LOCATION_UPDATE, LocationTransport, LocationUpdate

logger = logging.getLogger("roadhive.tracking.session")

NOTICE_LEVELS = {
    "success": logging.INFO,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class TrackingModeError(Exception):
    """Raised when a position source is switched on outside In Transit."""


class Notice(NamedTuple):
    level: str
    message: str


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _same_point(a: Coordinates, b: Coordinates) -> bool:
    return a.lat == b.lat and a.lng == b.lng


class TripSession:
    """
    One participant's live view of a trip.

    Args:
        api: authenticated Trip/Load API client
        load_id: the trip's load
        viewer_id: the participant's user id; the assigned driver resumes
            GPS tracking on open when the load is already In Transit
        watcher: device location watch for GPS mode, None when unsupported
        transport: location bus, one per session
        rng: random source for simulation and the traffic roll
    """

    def __init__(
        self,
        api: TripApiClient,
        load_id: str,
        viewer_id: Optional[str] = None,
        watcher: Optional[LocationWatcher] = None,
        transport: Optional[LocationTransport] = None,
        rng: Optional[random.Random] = None,
        simulation_interval: Optional[float] = None,
        poll_interval: Optional[float] = None,
    ):
        self._api = api
        self.load_id = load_id
        self.viewer_id = viewer_id
        self.transport = transport or LocationTransport(api, poll_interval)
        self._rng = rng or random.Random()
        self._gps = GpsSource(watcher)
        self._simulation: Optional[SimulationSource] = None
        self._simulation_interval = simulation_interval
        self._pending: Set[asyncio.Task] = set()

        self.load: Optional[LoadResponse] = None
        self.mode = TrackingMode.OFF
        self.current_position: Optional[Coordinates] = None
        self.history: List[Coordinates] = []
        self.alerts: List[Alert] = []
        self.battery: Optional[BatteryStatus] = None
        self.progress = TripProgress(0.0, None)
        self.gps_error: Optional[str] = None
        self.otp_requested = False
        self.notices: List[Notice] = []

    # Lifecycle

    async def open(self) -> bool:
        """Load the trip, its traveled route and start listening for updates."""
        try:
            load = await self._api.get_load(self.load_id)
            history = await self._api.get_location_history(self.load_id)
        except TripApiError as exc:
            self._notify("error", f"Could not load trip: {exc.message}")
            return False

        self.load = load
        self.current_position = load.current_location
        self.history = list(history)
        self._recompute_progress()

        self.transport.subscribe(LOCATION_UPDATE, self._on_remote_update)
        self.transport.connect(load.tenant_id)

        if self.is_driver and is_trackable(load.status):
            self.set_tracking_mode(TrackingMode.GPS)
        return True

    async def close(self) -> None:
        """Tear down the source and the transport, then let in-flight writes finish."""
        self.stop_tracking()
        self.transport.disconnect()
        await self._drain()

    @property
    def is_driver(self) -> bool:
        return (
            self.load is not None
            and self.viewer_id is not None
            and self.load.assigned_driver_id == self.viewer_id
        )

    # Tracking

    def set_tracking_mode(self, mode: TrackingMode) -> None:
        """
        Switch the position source.

        The old source is fully stopped before the new one starts, so at most
        one source ever feeds the session.

        Raises:
            TrackingModeError: GPS or SIMULATION requested outside In Transit
        """
        mode = TrackingMode(mode)
        if mode != TrackingMode.OFF and (self.load is None or not is_trackable(self.load.status)):
            status = self.load.status.value if self.load else "unknown"
            raise TrackingModeError(f"Tracking is only available In Transit, current status: {status}")

        self.stop_tracking()

        if mode == TrackingMode.GPS:
            self.gps_error = None
            self.mode = TrackingMode.GPS
            self._gps.start(self._on_fix, self.on_gps_error)
        elif mode == TrackingMode.SIMULATION:
            self._simulation = SimulationSource(
                lambda: self.current_position,
                pickup=self.load.pickup_coordinates,
                interval=self._simulation_interval,
                rng=self._rng,
            )
            self.mode = TrackingMode.SIMULATION
            self._simulation.start(self._on_fix)

    def stop_tracking(self) -> None:
        """Clear the GPS watch and the simulation timer. No fix is applied afterwards."""
        self._gps.stop()
        if self._simulation is not None:
            self._simulation.stop()
            self._simulation = None
        self.mode = TrackingMode.OFF

    def on_gps_error(self, error: GeolocationError) -> None:
        self.mode = TrackingMode.OFF
        self.gps_error = error.message
        self._notify("error", f"GPS error: {error.message}. Switch to simulation to keep tracking.")

    def _on_fix(self, fix: Coordinates) -> None:
        if self.load is None or self.mode == TrackingMode.OFF or not is_trackable(self.load.status):
            return
        if fix.timestamp is None:
            fix = fix.model_copy(update={"timestamp": datetime.now(timezone.utc)})

        self._apply_position(fix)
        self._recompute_alerts()

        self.transport.emit(LOCATION_UPDATE, LocationUpdate(
            load_id=self.load.id,
            coordinates=fix,
            status=self.load.status,
        ))
        self._spawn(self._persist_fix(fix))

    async def _persist_fix(self, fix: Coordinates) -> bool:
        try:
            await self._api.update_location(self.load.id, fix)
        except TripApiError as exc:
            # Kept locally, missing from the persisted trail
            logger.warning("Dropped fix for load %s: %s", self.load.id, exc)
            return False
        return True

    def _on_remote_update(self, update: LocationUpdate) -> None:
        if self.load is None or update.load_id != self.load.id:
            return

        coords = update.coordinates
        last = self.history[-1] if self.history else None
        # Skips our own echo and polls of fixes older than the one we hold
        moved = last is None or not (_same_point(last, coords) or self._is_older(coords, last))
        status_changed = update.status != self.load.status
        if not moved and not status_changed:
            return

        if moved:
            self.current_position = coords
            self.load = self.load.model_copy(update={"current_location": coords})
            self.history.append(coords)

        if status_changed:
            self.load = self.load.model_copy(update={"status": update.status})
            if self.mode != TrackingMode.OFF and not is_trackable(update.status):
                self.stop_tracking()
                self._notify("info", f"Trip is now {update.status.value}, tracking stopped.")

        self._recompute_progress()
        if moved:
            self._recompute_alerts()

    @staticmethod
    def _is_older(fix: Coordinates, reference: Coordinates) -> bool:
        if fix.timestamp is None or reference.timestamp is None:
            return False
        return _utc(fix.timestamp) < _utc(reference.timestamp)

    # Alerts

    def update_battery(self, level: Optional[float], charging: bool = False) -> None:
        self.battery = BatteryStatus(level=level, charging=charging)
        if self.load is not None:
            # Traffic is rolled once per fix, not per battery sample
            self._recompute_alerts(roll_traffic=False)

    def dismiss_alert(self, alert_id: str) -> None:
        self.alerts = dismiss_alert(self.alerts, alert_id)

    # Trip actions

    async def start(self) -> bool:
        if not await self._persist_status(LoadStatus.IN_TRANSIT, expected=LoadStatus.ASSIGNED):
            return False
        self.set_tracking_mode(TrackingMode.GPS)
        self._notify("success", "Trip started successfully!")
        return True

    async def pause(self) -> bool:
        if not await self._persist_status(LoadStatus.PAUSED):
            return False
        self.stop_tracking()
        self._notify("info", "Trip paused.")
        return True

    async def resume(self) -> bool:
        if not await self._persist_status(LoadStatus.IN_TRANSIT, expected=LoadStatus.PAUSED):
            return False
        self.set_tracking_mode(TrackingMode.GPS)
        self._notify("success", "Trip resumed!")
        return True

    async def mark_reached(self) -> bool:
        """
        Record arrival at the drop point.

        Tracking stops first, then the drop point is written as the final
        fix, then the status, then the receiver's OTP is requested. A failed
        OTP request leaves the load Reached with a warning to resend.
        """
        if self.load is None or not is_trackable(self.load.status):
            status = self.load.status.value if self.load else "unknown"
            self._notify("error", f"Only a trip In Transit can be marked reached, current status: {status}")
            return False

        self.stop_tracking()
        await self._drain()

        drop = self.load.drop_coordinates
        if drop is not None:
            final = Coordinates(lat=drop.lat, lng=drop.lng, timestamp=datetime.now(timezone.utc))
            self._apply_position(final)
            await self._persist_fix(final)

        if not await self._persist_status(LoadStatus.REACHED):
            return False

        if await self._send_otp(resend=False):
            self._notify("success", "Arrived! OTP sent to receiver's email.")
        else:
            self._notify("warning", "Arrived, but failed to send OTP. Resend it to the receiver.")
        return True

    async def resend_otp(self) -> bool:
        if await self._send_otp(resend=True):
            self._notify("success", "New OTP sent to receiver's email.")
            return True
        self._notify("warning", "Failed to resend OTP. Please try again.")
        return False

    async def verify_otp(self, code: str) -> bool:
        """Submit the receiver's code. On success the trip is Completed and the session winds down."""
        if self.load is None:
            return False
        try:
            result = await self._api.verify_otp(self.load.id, code)
        except TripApiError as exc:
            if exc.error_code == "ERR_OTP_INVALID":
                remaining = exc.details.get("attempts_remaining")
                suffix = f" {remaining} attempts left." if remaining is not None else ""
                self._notify("error", f"Invalid OTP. Please try again.{suffix}")
            else:
                self._notify("error", exc.message)
            return False

        self._adopt(result.load)
        self.stop_tracking()
        self.transport.disconnect()
        self._notify("success", "Delivery Verified Successfully!")
        return True

    # Internals

    async def _persist_status(self, target: LoadStatus, expected: Optional[LoadStatus] = None) -> bool:
        if self.load is None:
            return False
        try:
            if expected is not None and self.load.status != expected:
                raise InvalidTransitionError(self.load.status.value, target.value)
            ensure_transition(self.load.status, target)
        except InvalidTransitionError as exc:
            self._notify("error", exc.message)
            return False

        try:
            load = await self._api.update_status(self.load.id, target)
        except TripApiError as exc:
            self._notify("error", f"Could not update trip status: {exc.message}")
            return False

        self._adopt(load)
        return True

    async def _send_otp(self, resend: bool) -> bool:
        send = self._api.resend_otp if resend else self._api.request_otp
        try:
            await send(self.load.id)
        except TripApiError as exc:
            logger.warning("OTP dispatch failed for load %s: %s", self.load.id, exc)
            return False
        self.otp_requested = True
        return True

    def _adopt(self, load: LoadResponse) -> None:
        # The local position wins over the server copy, which may lag behind pending writes
        if self.current_position is not None:
            load = load.model_copy(update={"current_location": self.current_position})
        else:
            self.current_position = load.current_location
        self.load = load
        self._recompute_progress()

    def _apply_position(self, fix: Coordinates) -> None:
        self.current_position = fix
        self.load = self.load.model_copy(update={"current_location": fix})
        self.history.append(fix)
        self._recompute_progress()

    def _recompute_progress(self) -> None:
        self.progress = compute_progress(self.load)

    def _recompute_alerts(self, roll_traffic: bool = True) -> None:
        self.alerts = compute_alerts(
            self.load,
            self.current_position,
            self.battery,
            self.mode,
            previous=self.alerts,
            rng=self._rng,
            roll_traffic=roll_traffic,
        )

    def _notify(self, level: str, message: str) -> None:
        self.notices.append(Notice(level, message))
        logger.log(NOTICE_LEVELS.get(level, logging.INFO), "[load %s] %s", self.load_id, message)

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _drain(self) -> None:
        if self._pending:
            await asyncio.gather(*list(self._pending))
