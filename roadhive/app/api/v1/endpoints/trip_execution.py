"""
Driver Trip Execution API Endpoints.

Drivers advance the trip lifecycle and stream GPS fixes while in transit.
"""

from datetime import datetime, timezone
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status, Path, Body
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from roadhive.app.db.session import get_db
from roadhive.app.models.load_enums import LoadStatus
from roadhive.app.models.location_history import LocationHistory
from roadhive.app.schemas.load import Coordinates, LoadResponse
from roadhive.app.schemas.trip_execution import StatusUpdate, LocationRecordResponse
from roadhive.app.core.dependencies import get_current_user
from roadhive.app.core.exceptions import LoadNotTrackableError
from roadhive.app.core.guards import LoadAccessGuard
from roadhive.app.domain.trip.geo import haversine_distance
from roadhive.app.domain.trip.state_machine import ensure_transition, is_trackable
from roadhive.app.services.audit import log_user_event, AuditAction

router = APIRouter(prefix="/loads", tags=["Driver - Trip Execution"])
access_guard = LoadAccessGuard()


def _transition_action(current: LoadStatus, target: LoadStatus) -> str:
    if target == LoadStatus.IN_TRANSIT:
        return AuditAction.TRIP_RESUMED if current == LoadStatus.PAUSED else AuditAction.TRIP_STARTED
    if target == LoadStatus.PAUSED:
        return AuditAction.TRIP_PAUSED
    return AuditAction.TRIP_REACHED


@router.patch("/{load_id}/status", response_model=LoadResponse)
async def update_status(
    load_id: str = Path(..., description="Load ID"),
    update: StatusUpdate = Body(...),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Advance the trip (assigned driver only).

    Validates:
    - Caller is the assigned driver
    - Target is not Completed (delivery OTP only)
    - Target is the next lifecycle state

    Actions:
    - Stamp started_at on first departure, reached_at on arrival
    - Stamp last_updated so viewers pick up the change
    """
    load = await access_guard.get_visible_load(db, load_id, current_user)
    access_guard.enforce_assigned_driver(load, current_user)

    if update.status == LoadStatus.COMPLETED:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Completion requires delivery OTP verification"
        )

    previous = load.status
    ensure_transition(previous, update.status)

    now = datetime.now(timezone.utc)
    load.status = update.status
    load.last_updated = now
    if update.status == LoadStatus.IN_TRANSIT and load.started_at is None:
        load.started_at = now
    if update.status == LoadStatus.REACHED:
        load.reached_at = now

    await db.commit()
    await db.refresh(load)

    await log_user_event(
        db=db,
        action=_transition_action(previous, update.status),
        current_user=current_user,
        load_id=load.id,
        metadata={"from": previous.value, "to": update.status.value}
    )

    return LoadResponse.from_model(load)


@router.post("/{load_id}/location", response_model=LocationRecordResponse)
async def record_location(
    load_id: str = Path(..., description="Load ID"),
    location: Coordinates = Body(...),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Record a GPS fix (assigned driver only).

    Moves the load's current location and appends to its path history.
    """
    load = await access_guard.get_visible_load(db, load_id, current_user)
    access_guard.enforce_assigned_driver(load, current_user)

    if not is_trackable(load.status):
        raise LoadNotTrackableError(load.status.value)

    now = datetime.now(timezone.utc)
    recorded_at = location.timestamp or now

    # Accumulate distance between successive persisted fixes
    if load.current_lat is not None and load.current_lng is not None:
        load.distance_travelled_km = (load.distance_travelled_km or 0.0) + haversine_distance(
            load.current_lat, load.current_lng, location.lat, location.lng
        )

    load.current_lat = location.lat
    load.current_lng = location.lng
    load.current_heading = location.heading
    load.current_speed = location.speed
    load.current_recorded_at = recorded_at
    load.last_updated = now

    entry = LocationHistory(
        load_id=load.id,
        driver_id=current_user["user_id"],
        lat=location.lat,
        lng=location.lng,
        heading=location.heading,
        speed=location.speed,
        recorded_at=recorded_at
    )

    db.add(entry)
    await db.commit()
    await db.refresh(entry)

    # Fixes are not audited individually

    return LocationRecordResponse(
        load_id=load.id,
        location_id=entry.id,
        recorded=True
    )


@router.get("/{load_id}/history", response_model=List[Coordinates])
async def get_location_history(
    load_id: str = Path(..., description="Load ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get the traveled route, oldest fix first."""
    load = await access_guard.get_visible_load(db, load_id, current_user)

    result = await db.execute(
        select(LocationHistory)
        .where(LocationHistory.load_id == load.id)
        .order_by(LocationHistory.recorded_at, LocationHistory.id)
    )

    return [
        Coordinates(
            lat=entry.lat,
            lng=entry.lng,
            heading=entry.heading,
            speed=entry.speed,
            timestamp=entry.recorded_at
        )
        for entry in result.scalars().all()
    ]
