"""
Trip lifecycle rules.

Assigned -> In Transit <-> Paused, In Transit -> Reached -> Completed.
Used by the status endpoint and by the driver's trip session.
"""

from typing import Dict, FrozenSet

from roadhive.app.core.exceptions import InvalidTransitionError
from roadhive.app.models.load_enums import LoadStatus


TRANSITIONS: Dict[LoadStatus, FrozenSet[LoadStatus]] = {
    LoadStatus.ASSIGNED: frozenset({LoadStatus.IN_TRANSIT}),
    LoadStatus.IN_TRANSIT: frozenset({LoadStatus.PAUSED, LoadStatus.REACHED}),
    LoadStatus.PAUSED: frozenset({LoadStatus.IN_TRANSIT}),
    LoadStatus.REACHED: frozenset({LoadStatus.COMPLETED}),
}


def can_transition(current: LoadStatus, target: LoadStatus) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def ensure_transition(current: LoadStatus, target: LoadStatus) -> None:
    """
    Validate a status change.

    Raises:
        InvalidTransitionError: if the change is not an edge of the lifecycle
    """
    if not can_transition(current, target):
        raise InvalidTransitionError(current.value, target.value)


def is_trackable(status: LoadStatus) -> bool:
    """Position may only change while the vehicle is in transit."""
    return status == LoadStatus.IN_TRANSIT
