"""
Trip progress derived from the load's route endpoints and current position.
"""

from typing import NamedTuple, Optional

from roadhive.app.domain.trip.geo import distance_km
from roadhive.app.models.load_enums import LoadStatus

# 100 is reserved for an arrival the driver has confirmed
MAX_IN_TRANSIT_PERCENT = 95.0


class TripProgress(NamedTuple):
    percent: float
    remaining_km: Optional[float]


def compute_progress(load) -> TripProgress:
    """
    Compute percent complete and distance remaining for a load.

    Reached/Completed loads are at 100%. Assigned/Pending loads have not
    started, so remaining distance is not meaningful yet. Otherwise progress
    is the share of the pickup-to-drop distance already covered, clamped to
    [0, 95].
    """
    if load.status in (LoadStatus.REACHED, LoadStatus.COMPLETED):
        return TripProgress(100.0, 0.0)

    if load.status in (LoadStatus.ASSIGNED, LoadStatus.PENDING):
        return TripProgress(0.0, None)

    pickup = load.pickup_coordinates
    drop = load.drop_coordinates
    if pickup is None or drop is None:
        return TripProgress(0.0, None)

    total = distance_km(pickup, drop)
    current = load.current_location or pickup
    remaining = distance_km(current, drop)

    if total <= 0:
        return TripProgress(0.0, remaining)

    pct = (total - remaining) / total * 100
    return TripProgress(max(0.0, min(MAX_IN_TRANSIT_PERCENT, pct)), remaining)
