"""
Location history database model.

Append-only ledger of position fixes, one row per persisted fix.
"""

from sqlalchemy import Column, Integer, String, Float, ForeignKey, DateTime
from sqlalchemy.sql import func
from roadhive.app.db.session import Base


class LocationHistory(Base):
    """
    Location history model.

    Rows are never updated or deleted; the traveled route is the rows of a
    load ordered by recorded_at.
    """
    __tablename__ = "location_history"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    load_id = Column(String(36), ForeignKey('loads.id'), nullable=False, index=True)
    driver_id = Column(String(64), nullable=False)

    # GPS fix
    lat = Column(Float, nullable=False)
    lng = Column(Float, nullable=False)
    heading = Column(Float, nullable=True)  # degrees
    speed = Column(Float, nullable=True)  # m/s

    # Timing
    recorded_at = Column(DateTime(timezone=True), nullable=False, index=True)  # When the fix was captured
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)  # When inserted to DB

    def __repr__(self):
        return f"<LocationHistory(load_id={self.load_id}, lat={self.lat}, lng={self.lng})>"
