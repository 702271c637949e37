"""
Trip execution schemas.
"""

from pydantic import BaseModel
from roadhive.app.models.load_enums import LoadStatus


class StatusUpdate(BaseModel):
    """Schema for a driver-initiated status change."""
    status: LoadStatus


class LocationRecordResponse(BaseModel):
    """Response after recording location."""
    load_id: str
    location_id: int
    recorded: bool
