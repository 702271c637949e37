"""
Situational alerts for an active trip.

Alerts are derived state: every new fix or battery sample recomputes the full
set from the inputs, keyed by alert id. Only the traffic alert reads the
previous set, because once raised it is carried forward until dismissed.
"""

import enum
import random
from typing import Iterable, List, Optional

from pydantic import BaseModel

from roadhive.app.core.config import settings
from roadhive.app.domain.trip.geo import distance_km, ms_to_kmh
from roadhive.app.domain.trip.tracking_mode import TrackingMode
from roadhive.app.models.load_enums import LoadStatus

BATTERY_ALERT = "batt-low"
SPEED_ALERT = "speed"
PROXIMITY_CLOSE_ALERT = "prox-close"
PROXIMITY_NEAR_ALERT = "prox-near"
TRAFFIC_ALERT = "traffic"

PROXIMITY_CLOSE_KM = 2.0
PROXIMITY_NEAR_KM = 10.0
TRAFFIC_PROBABILITY = 0.05


class AlertSeverity(str, enum.Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class Alert(BaseModel):
    id: str
    severity: AlertSeverity
    message: str
    icon: str


class BatteryStatus(BaseModel):
    level: Optional[float] = None  # 0.0 - 1.0, None when the device does not report it
    charging: bool = False


def _dedupe(alerts: Iterable[Alert]) -> List[Alert]:
    by_id = {}
    for alert in alerts:
        by_id[alert.id] = alert
    return list(by_id.values())


def _battery_alert(battery: Optional[BatteryStatus]) -> Optional[Alert]:
    if battery is None or battery.level is None or battery.charging:
        return None
    if battery.level < settings.low_battery_threshold:
        return Alert(
            id=BATTERY_ALERT,
            severity=AlertSeverity.CRITICAL,
            message="Low Battery: Connect charger to maintain GPS",
            icon="battery-warning",
        )
    return None


def _speed_alert(position) -> Optional[Alert]:
    speed_kmh = ms_to_kmh(position.speed or 0)
    if speed_kmh > settings.speed_limit_kmh:
        return Alert(
            id=SPEED_ALERT,
            severity=AlertSeverity.WARNING,
            message=f"Speed Warning: Slow down (Limit {settings.speed_limit_kmh:.0f}km/h)",
            icon="siren",
        )
    return None


def _proximity_alert(load, position) -> Optional[Alert]:
    if load.status == LoadStatus.ASSIGNED:
        target, label = load.pickup_coordinates, "Pickup"
    else:
        target, label = load.drop_coordinates, "Drop-off"
    if target is None:
        return None

    dist = distance_km(position, target)
    if dist < PROXIMITY_CLOSE_KM:
        return Alert(
            id=PROXIMITY_CLOSE_ALERT,
            severity=AlertSeverity.INFO,
            message=f"Approaching {label} (< 2km)",
            icon="map-pin",
        )
    if dist < PROXIMITY_NEAR_KM:
        return Alert(
            id=PROXIMITY_NEAR_ALERT,
            severity=AlertSeverity.INFO,
            message=f"{label} is nearby ({dist:.1f}km)",
            icon="navigation",
        )
    return None


def _traffic_alert(mode: TrackingMode, previous: List[Alert], rng, roll: bool) -> Optional[Alert]:
    for alert in previous:
        if alert.id == TRAFFIC_ALERT:
            return alert
    if roll and mode == TrackingMode.SIMULATION and rng.random() < TRAFFIC_PROBABILITY:
        return Alert(
            id=TRAFFIC_ALERT,
            severity=AlertSeverity.WARNING,
            message="Heavy Traffic reported ahead (+10m delay)",
            icon="alert-triangle",
        )
    return None


def compute_alerts(
    load,
    position,
    battery: Optional[BatteryStatus],
    mode: TrackingMode,
    previous: Optional[List[Alert]] = None,
    rng: Optional[random.Random] = None,
    roll_traffic: bool = True,
) -> List[Alert]:
    """
    Recompute the active alert set.

    Args:
        load: the trip's load (status, pickup and drop coordinates)
        position: latest fix; when None only the battery rule applies
        battery: latest battery sample, if the device reports one
        mode: active tracking mode
        previous: the alert set currently shown
        rng: random source for the simulated traffic roll
        roll_traffic: roll for new traffic; False keeps only a traffic alert
            already shown

    Returns:
        Alerts deduplicated by id
    """
    previous = previous or []
    rng = rng or random

    candidates = [_battery_alert(battery)]
    if position is not None:
        candidates.append(_speed_alert(position))
        candidates.append(_proximity_alert(load, position))
    candidates.append(_traffic_alert(mode, previous, rng, roll_traffic))

    return _dedupe(alert for alert in candidates if alert is not None)


def dismiss_alert(alerts: List[Alert], alert_id: str) -> List[Alert]:
    """Drop one alert id; it returns when its condition next triggers."""
    return [alert for alert in alerts if alert.id != alert_id]
