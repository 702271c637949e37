"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from roadhive.app.api.v1.endpoints import loads, trip_execution, delivery_otp, payments

router = APIRouter()

# Marketplace: posting and bidding
router.include_router(loads.router)

# Live trip execution
router.include_router(trip_execution.router)

# Delivery verification
router.include_router(delivery_otp.router)

# Simulated payments
router.include_router(payments.router)
