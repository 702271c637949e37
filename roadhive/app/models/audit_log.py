"""
Audit Log Database Model.

Tracks trip lifecycle, delivery verification and payment events.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from roadhive.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model.

    Events logged:
    - LOAD_CREATED / BID_PLACED
    - TRIP_STARTED / TRIP_PAUSED / TRIP_RESUMED / TRIP_REACHED / TRIP_COMPLETED
    - OTP_REQUESTED / OTP_RESENT / OTP_FAILED
    - ADVANCE_PAID / BALANCE_PAID
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions)
    actor_id = Column(String(64), index=True, nullable=True)
    actor_role = Column(String(30), nullable=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # Which load it concerned
    load_id = Column(String(36), index=True, nullable=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    # Timestamp
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_id}, load={self.load_id})>"
