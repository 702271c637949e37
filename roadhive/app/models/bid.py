"""
Bid database model.
"""

from sqlalchemy import Column, Integer, String, Float, ForeignKey, DateTime, Enum
from sqlalchemy.sql import func
from roadhive.app.db.session import Base
from roadhive.app.models.load_enums import BidStatus


class Bid(Base):
    """Transporter bid on a marketplace load."""
    __tablename__ = "bids"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    load_id = Column(String(36), ForeignKey('loads.id'), nullable=False, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)  # Transporter tenant

    transporter_name = Column(String(200), nullable=False)
    amount = Column(Float, nullable=False)
    vehicle_details = Column(String(255), nullable=True)
    status = Column(Enum(BidStatus), default=BidStatus.PENDING, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Bid(id={self.id}, load_id={self.load_id}, amount={self.amount})>"
