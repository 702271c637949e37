"""
Delivery Verification API Endpoints.

The driver or transporter asks for a code to be sent to the receiver once the
load has reached its drop point; the code submitted back completes the load.
"""

from fastapi import APIRouter, Depends, Path, Body
from sqlalchemy.ext.asyncio import AsyncSession

from roadhive.app.db.session import get_db
from roadhive.app.core.dependencies import get_current_user
from roadhive.app.core.exceptions import OtpDispatchError
from roadhive.app.core.guards import LoadAccessGuard
from roadhive.app.core.redis_client import get_redis
from roadhive.app.schemas.load import LoadResponse
from roadhive.app.schemas.otp import OtpRequestResponse, OtpVerifyRequest, OtpVerifyResponse
from roadhive.app.services.audit import log_user_event, AuditAction
from roadhive.app.services.delivery_otp import DeliveryOtpService

router = APIRouter(prefix="/loads", tags=["Delivery Verification"])
access_guard = LoadAccessGuard()


async def _issue(load_id: str, action: str, current_user: dict, db: AsyncSession, redis) -> OtpRequestResponse:
    load = await access_guard.get_visible_load(db, load_id, current_user)
    access_guard.enforce_trip_participant(load, current_user)

    try:
        expires_at = await DeliveryOtpService.issue(db, redis, load)
    except OtpDispatchError:
        await log_user_event(
            db=db,
            action=AuditAction.OTP_FAILED,
            current_user=current_user,
            load_id=load_id,
            metadata={"reason": "dispatch"}
        )
        raise

    await log_user_event(
        db=db,
        action=action,
        current_user=current_user,
        load_id=load_id,
        metadata={"expires_at": expires_at.isoformat()}
    )

    return OtpRequestResponse(load_id=load_id, requested=True, expires_at=expires_at)


@router.post("/{load_id}/otp/request", response_model=OtpRequestResponse)
async def request_otp(
    load_id: str = Path(..., description="Load ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    """
    Send a delivery code to the receiver (assigned driver or transporter).

    Load must be Reached.
    """
    return await _issue(load_id, AuditAction.OTP_REQUESTED, current_user, db, redis)


@router.post("/{load_id}/otp/resend", response_model=OtpRequestResponse)
async def resend_otp(
    load_id: str = Path(..., description="Load ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    """Replace the delivery code; the previous one stops working."""
    return await _issue(load_id, AuditAction.OTP_RESENT, current_user, db, redis)


@router.post("/{load_id}/otp/verify", response_model=OtpVerifyResponse)
async def verify_otp(
    load_id: str = Path(..., description="Load ID"),
    payload: OtpVerifyRequest = Body(...),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    """
    Verify the receiver's delivery code and complete the load.

    A wrong code leaves the load Reached and reports the attempts left.
    """
    load = await access_guard.get_visible_load(db, load_id, current_user)
    access_guard.enforce_trip_participant(load, current_user, allow_receiver=True)

    load = await DeliveryOtpService.verify(db, redis, load, payload.otp)

    await log_user_event(
        db=db,
        action=AuditAction.TRIP_COMPLETED,
        current_user=current_user,
        load_id=load.id,
        metadata={"invoice_number": load.invoice_number, "total_amount": load.total_amount}
    )

    return OtpVerifyResponse(load_id=load.id, completed=True, load=LoadResponse.from_model(load))
