"""
Load API Endpoints.

Shippers post loads, every role lists the loads it may see, and
transporters take marketplace loads by bidding.
"""

from datetime import datetime, timezone
from typing import List
from fastapi import APIRouter, Depends, HTTPException, status, Path, Body
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update

from roadhive.app.db.session import get_db
from roadhive.app.models.load import Load
from roadhive.app.models.bid import Bid
from roadhive.app.models.load_enums import LoadStatus, BidStatus
from roadhive.app.models.enums import UserRole
from roadhive.app.schemas.load import LoadCreate, LoadResponse, BidCreate
from roadhive.app.core.dependencies import get_current_user
from roadhive.app.core.guards import require_role, LoadAccessGuard
from roadhive.app.services.audit import log_user_event, AuditAction

router = APIRouter(prefix="/loads", tags=["Loads"])
access_guard = LoadAccessGuard()

BIDDABLE_STATUSES = (LoadStatus.ACTIVE, LoadStatus.PENDING)


@router.post("", response_model=LoadResponse, status_code=status.HTTP_201_CREATED)
async def create_load(
    load_data: LoadCreate,
    current_user: dict = Depends(require_role([UserRole.SHIPPER, UserRole.ADMIN, UserRole.SUPER_ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """
    Post a load to the marketplace (Shipper).

    The load belongs to the caller's tenant and starts Active.
    """
    pickup = load_data.pickup_coordinates
    drop = load_data.drop_coordinates

    load = Load(
        tenant_id=current_user["tenant_id"],
        shipper_user_id=current_user["user_id"],
        title=load_data.title,
        material_type=load_data.material_type,
        weight=load_data.weight,
        vehicle_type=load_data.vehicle_type,
        vehicle_count=load_data.vehicle_count,
        price=load_data.price,
        goods_value=load_data.goods_value,
        insurance_required=load_data.insurance_required,
        insurance_premium=load_data.insurance_premium,
        pickup_city=load_data.pickup_city,
        pickup_lat=pickup.lat if pickup else None,
        pickup_lng=pickup.lng if pickup else None,
        drop_city=load_data.drop_city,
        drop_lat=drop.lat if drop else None,
        drop_lng=drop.lng if drop else None,
        receiver_email=load_data.receiver_email.lower() if load_data.receiver_email else None,
        status=LoadStatus.ACTIVE,
    )

    db.add(load)
    await db.commit()
    await db.refresh(load)

    await log_user_event(
        db=db,
        action=AuditAction.LOAD_CREATED,
        current_user=current_user,
        load_id=load.id,
        metadata={"load_number": load.load_number, "price": load.price}
    )

    return LoadResponse.from_model(load)


@router.get("", response_model=List[LoadResponse])
async def list_loads(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    List loads visible to the caller, newest first.

    Shippers and admins see their tenant, drivers their assignments,
    transporters their assignments plus the open marketplace.
    """
    query = select(Load).order_by(Load.created_at.desc(), Load.id)
    clause = access_guard.visibility_filter(current_user)
    if clause is not None:
        query = query.where(clause)

    result = await db.execute(query)
    return [LoadResponse.from_model(load) for load in result.scalars().all()]


@router.get("/{load_id}", response_model=LoadResponse)
async def get_load(
    load_id: str = Path(..., description="Load ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get one load, if visible to the caller."""
    load = await access_guard.get_visible_load(db, load_id, current_user)
    return LoadResponse.from_model(load)


@router.post("/{load_id}/bids", response_model=LoadResponse)
async def place_bid(
    load_id: str = Path(..., description="Load ID"),
    bid_data: BidCreate = Body(...),
    current_user: dict = Depends(require_role([UserRole.TRANSPORTER])),
    db: AsyncSession = Depends(get_db)
):
    """
    Bid on a marketplace load (Transporter).

    Bids are accepted immediately: the load is assigned to the bidding
    tenant and driver at the bid amount.
    """
    load = await access_guard.get_visible_load(db, load_id, current_user)

    if load.status not in BIDDABLE_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Load is not open for bids, current status: {load.status.value}"
        )

    driver_id = bid_data.driver_id.strip() if bid_data.driver_id and bid_data.driver_id.strip() else current_user["user_id"]

    # Only the first bid to commit finds the load still open
    result = await db.execute(
        update(Load)
        .where(Load.id == load.id, Load.status.in_(BIDDABLE_STATUSES))
        .values(
            status=LoadStatus.ASSIGNED,
            assigned_transporter_id=current_user["tenant_id"],
            assigned_driver_id=driver_id,
            price=bid_data.amount,
            last_updated=datetime.now(timezone.utc),
        )
    )
    if result.rowcount != 1:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Load was assigned to another bid"
        )

    db.add(Bid(
        load_id=load.id,
        tenant_id=current_user["tenant_id"],
        transporter_name=bid_data.transporter_name or current_user.get("sub") or "Transporter",
        amount=bid_data.amount,
        vehicle_details=bid_data.vehicle_details,
        status=BidStatus.ACCEPTED,
    ))

    await db.commit()
    await db.refresh(load)

    await log_user_event(
        db=db,
        action=AuditAction.BID_PLACED,
        current_user=current_user,
        load_id=load.id,
        metadata={"amount": bid_data.amount, "assigned_driver_id": driver_id}
    )

    return LoadResponse.from_model(load)
