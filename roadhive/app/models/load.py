"""
Load database model.

A load is a shipment request and the entity that carries a trip.
"""

import uuid
from sqlalchemy import Column, String, Float, Integer, Boolean, DateTime, Enum
from sqlalchemy.sql import func
from roadhive.app.db.session import Base
from roadhive.app.models.load_enums import LoadStatus, PaymentStatus


def new_load_id() -> str:
    return str(uuid.uuid4())


def new_load_number() -> str:
    return f"L-{uuid.uuid4().hex[:6].upper()}"


class Load(Base):
    """
    Load model.

    Posted by a shipper tenant, assigned to a transporter tenant and one driver,
    tracked while in transit and completed by the receiver's delivery OTP.
    """
    __tablename__ = "loads"

    id = Column(String(36), primary_key=True, default=new_load_id)
    load_number = Column(String(20), nullable=False, default=new_load_number, index=True)

    # Ownership - Load belongs to the shipper tenant
    tenant_id = Column(String(64), nullable=False, index=True)
    shipper_user_id = Column(String(64), nullable=False)

    # Assignment
    assigned_transporter_id = Column(String(64), nullable=True, index=True)
    assigned_driver_id = Column(String(64), nullable=True, index=True)
    receiver_email = Column(String(255), nullable=True, index=True)

    # Core data
    title = Column(String(200), nullable=False)
    material_type = Column(String(100), nullable=True)
    weight = Column(Float, nullable=True)  # tons
    vehicle_type = Column(String(50), nullable=True)
    vehicle_count = Column(Integer, default=1, nullable=False)
    price = Column(Float, default=0.0, nullable=False)
    goods_value = Column(Float, default=0.0, nullable=False)
    insurance_required = Column(Boolean, default=False, nullable=False)
    insurance_premium = Column(Float, default=0.0, nullable=False)

    # Route endpoints (fixed at creation)
    pickup_city = Column(String(100), nullable=True)
    pickup_lat = Column(Float, nullable=True)
    pickup_lng = Column(Float, nullable=True)
    drop_city = Column(String(100), nullable=True)
    drop_lat = Column(Float, nullable=True)
    drop_lng = Column(Float, nullable=True)

    # Live position, written only by the tracking pipeline
    current_lat = Column(Float, nullable=True)
    current_lng = Column(Float, nullable=True)
    current_heading = Column(Float, nullable=True)
    current_speed = Column(Float, nullable=True)  # m/s
    current_recorded_at = Column(DateTime(timezone=True), nullable=True)
    distance_travelled_km = Column(Float, default=0.0, nullable=False)

    # Status
    status = Column(Enum(LoadStatus), default=LoadStatus.ACTIVE, nullable=False, index=True)

    # Delivery verification (never serialized)
    delivery_auth_code = Column(String(6), nullable=True)
    delivery_auth_code_expires_at = Column(DateTime(timezone=True), nullable=True)

    # Financials
    platform_fee = Column(Float, nullable=True)
    tax_total = Column(Float, nullable=True)
    total_amount = Column(Float, nullable=True)
    payment_status = Column(Enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)
    advance_amount = Column(Float, nullable=True)
    balance_amount = Column(Float, nullable=True)
    invoice_number = Column(String(30), nullable=True)
    invoice_date = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    last_updated = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    reached_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Load(id={self.id}, number={self.load_number}, status='{self.status.value}')>"
