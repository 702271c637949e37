"""
Delivery OTP schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from roadhive.app.schemas.load import LoadResponse


class OtpRequestResponse(BaseModel):
    """Response after issuing a delivery code."""
    load_id: str
    requested: bool
    expires_at: datetime


class OtpVerifyRequest(BaseModel):
    """Receiver-supplied delivery code."""
    otp: str = Field(..., min_length=6, max_length=6, pattern=r"^\d{6}$")


class OtpVerifyResponse(BaseModel):
    """Response after a successful verification."""
    load_id: str
    completed: bool
    load: LoadResponse
