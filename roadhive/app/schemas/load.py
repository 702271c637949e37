"""
Load schemas.

Request and response shapes for loads, bids and coordinates. The tracking
client parses server payloads into the same models.
"""

from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from typing import Optional
from roadhive.app.models.load_enums import LoadStatus, PaymentStatus


class Coordinates(BaseModel):
    """One position fix."""
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    heading: Optional[float] = Field(None, ge=0, le=360, description="Compass bearing in degrees")
    speed: Optional[float] = Field(None, ge=0, description="Speed in m/s")
    timestamp: Optional[datetime] = Field(None, description="Capture time")


def _point(lat, lng) -> Optional[Coordinates]:
    if lat is None or lng is None:
        return None
    return Coordinates(lat=lat, lng=lng)


class LoadCreate(BaseModel):
    """Schema for posting a load."""
    title: str = Field(..., min_length=1, max_length=200)
    material_type: Optional[str] = Field(None, max_length=100)
    weight: Optional[float] = Field(None, gt=0, description="Weight in tons")
    vehicle_type: Optional[str] = Field(None, max_length=50)
    vehicle_count: int = Field(default=1, ge=1)
    price: float = Field(..., ge=0)
    goods_value: float = Field(default=0.0, ge=0)
    insurance_required: bool = False
    insurance_premium: float = Field(default=0.0, ge=0)
    pickup_city: Optional[str] = Field(None, max_length=100)
    drop_city: Optional[str] = Field(None, max_length=100)
    pickup_coordinates: Optional[Coordinates] = None
    drop_coordinates: Optional[Coordinates] = None
    receiver_email: Optional[EmailStr] = None


class LoadResponse(BaseModel):
    """Schema for displaying a load."""
    id: str
    load_number: str
    tenant_id: str
    title: str
    material_type: Optional[str] = None
    weight: Optional[float] = None
    vehicle_type: Optional[str] = None
    price: float = 0.0
    goods_value: float = 0.0
    insurance_premium: float = 0.0
    pickup_city: Optional[str] = None
    drop_city: Optional[str] = None
    pickup_coordinates: Optional[Coordinates] = None
    drop_coordinates: Optional[Coordinates] = None
    current_location: Optional[Coordinates] = None
    distance_travelled_km: float = 0.0
    status: LoadStatus
    assigned_transporter_id: Optional[str] = None
    assigned_driver_id: Optional[str] = None
    receiver_email: Optional[str] = None
    platform_fee: Optional[float] = None
    tax_total: Optional[float] = None
    total_amount: Optional[float] = None
    payment_status: PaymentStatus = PaymentStatus.PENDING
    advance_amount: Optional[float] = None
    balance_amount: Optional[float] = None
    invoice_number: Optional[str] = None
    invoice_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    last_updated: Optional[datetime] = None
    started_at: Optional[datetime] = None
    reached_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, load) -> "LoadResponse":
        """Build the response from a Load row, folding coordinate columns into points."""
        current = None
        if load.current_lat is not None and load.current_lng is not None:
            current = Coordinates(
                lat=load.current_lat,
                lng=load.current_lng,
                heading=load.current_heading,
                speed=load.current_speed,
                timestamp=load.current_recorded_at,
            )
        return cls(
            id=load.id,
            load_number=load.load_number,
            tenant_id=load.tenant_id,
            title=load.title,
            material_type=load.material_type,
            weight=load.weight,
            vehicle_type=load.vehicle_type,
            price=load.price,
            goods_value=load.goods_value,
            insurance_premium=load.insurance_premium,
            pickup_city=load.pickup_city,
            drop_city=load.drop_city,
            pickup_coordinates=_point(load.pickup_lat, load.pickup_lng),
            drop_coordinates=_point(load.drop_lat, load.drop_lng),
            current_location=current,
            distance_travelled_km=load.distance_travelled_km or 0.0,
            status=load.status,
            assigned_transporter_id=load.assigned_transporter_id,
            assigned_driver_id=load.assigned_driver_id,
            receiver_email=load.receiver_email,
            platform_fee=load.platform_fee,
            tax_total=load.tax_total,
            total_amount=load.total_amount,
            payment_status=load.payment_status,
            advance_amount=load.advance_amount,
            balance_amount=load.balance_amount,
            invoice_number=load.invoice_number,
            invoice_date=load.invoice_date,
            created_at=load.created_at,
            last_updated=load.last_updated,
            started_at=load.started_at,
            reached_at=load.reached_at,
            completed_at=load.completed_at,
        )


class BidCreate(BaseModel):
    """Schema for placing a bid. Bids are auto-accepted in the MVP marketplace."""
    amount: float = Field(..., gt=0)
    vehicle_details: Optional[str] = Field(None, max_length=255)
    transporter_name: Optional[str] = Field(None, max_length=200)
    driver_id: Optional[str] = Field(None, description="Driver to assign; defaults to the bidder")
