"""
Payment API Endpoints.

Simulated advance and balance payments by the shipper tenant.
"""

from fastapi import APIRouter, Depends, HTTPException, status, Path
from sqlalchemy.ext.asyncio import AsyncSession

from roadhive.app.db.session import get_db
from roadhive.app.models.enums import UserRole
from roadhive.app.models.load_enums import LoadStatus, PaymentStatus
from roadhive.app.schemas.billing import PaymentResponse
from roadhive.app.schemas.load import LoadResponse
from roadhive.app.core.guards import require_role, LoadAccessGuard
from roadhive.app.domain.billing.billing_service import BillingService
from roadhive.app.services.audit import log_user_event, AuditAction

router = APIRouter(prefix="/loads", tags=["Payments"])
access_guard = LoadAccessGuard()

PAYER_ROLES = [UserRole.SHIPPER, UserRole.ADMIN, UserRole.SUPER_ADMIN]

# Advance is paid once a transporter has been assigned
ADVANCE_STATUSES = (
    LoadStatus.ASSIGNED,
    LoadStatus.IN_TRANSIT,
    LoadStatus.PAUSED,
    LoadStatus.REACHED,
    LoadStatus.COMPLETED,
)


@router.post("/{load_id}/pay-advance", response_model=PaymentResponse)
async def pay_advance(
    load_id: str = Path(..., description="Load ID"),
    current_user: dict = Depends(require_role(PAYER_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    """Pay 30% of the total up front (owning shipper tenant)."""
    load = await access_guard.get_visible_load(db, load_id, current_user)
    access_guard.enforce_tenant_owner(load, current_user)

    if load.status not in ADVANCE_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Advance can only be paid once the load is assigned, current status: {load.status.value}"
        )
    if load.payment_status != PaymentStatus.PENDING:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Advance already settled, payment status: {load.payment_status.value}"
        )

    BillingService.pay_advance(load)
    await db.commit()
    await db.refresh(load)

    await log_user_event(
        db=db,
        action=AuditAction.ADVANCE_PAID,
        current_user=current_user,
        load_id=load.id,
        metadata={"advance_amount": load.advance_amount, "total_amount": load.total_amount}
    )

    return PaymentResponse(message="Advance payment recorded", load=LoadResponse.from_model(load))


@router.post("/{load_id}/pay-balance", response_model=PaymentResponse)
async def pay_balance(
    load_id: str = Path(..., description="Load ID"),
    current_user: dict = Depends(require_role(PAYER_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    """Pay the remaining balance after delivery (owning shipper tenant)."""
    load = await access_guard.get_visible_load(db, load_id, current_user)
    access_guard.enforce_tenant_owner(load, current_user)

    if load.status != LoadStatus.COMPLETED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Balance can only be paid after delivery, current status: {load.status.value}"
        )
    if load.payment_status == PaymentStatus.FULLY_PAID:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Load is already fully paid"
        )

    BillingService.pay_balance(load)
    await db.commit()
    await db.refresh(load)

    await log_user_event(
        db=db,
        action=AuditAction.BALANCE_PAID,
        current_user=current_user,
        load_id=load.id,
        metadata={"balance_amount": load.balance_amount, "total_amount": load.total_amount}
    )

    return PaymentResponse(message="Balance payment recorded", load=LoadResponse.from_model(load))
