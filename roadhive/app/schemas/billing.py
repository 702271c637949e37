"""
Billing schemas.
"""

from pydantic import BaseModel
from roadhive.app.schemas.load import LoadResponse


class PaymentResponse(BaseModel):
    """Response after a simulated payment."""
    message: str
    load: LoadResponse
