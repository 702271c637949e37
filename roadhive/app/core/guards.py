"""
Role and tenant rules for loads.

Roles come from the token; tenants and assignments from the load row. A
load the caller may not see answers 404, one they see but may not act on
answers 403.
"""

from typing import Iterable, Optional
from fastapi import Depends, HTTPException, status
from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession
from roadhive.app.models.enums import UserRole
from roadhive.app.models.load import Load
from roadhive.app.models.load_enums import LoadStatus
from roadhive.app.core.dependencies import get_current_user


def _forbidden(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def caller_role(current_user: dict) -> Optional[UserRole]:
    try:
        return UserRole(current_user.get("role"))
    except ValueError:
        return None


def require_role(allowed_roles: Iterable[UserRole]):
    """
    Dependency factory: the caller's claims, provided their role is allowed.

    Usage:
        @router.post("/loads/{load_id}/bids")
        async def place_bid(current_user: dict = Depends(require_role([UserRole.TRANSPORTER]))):
            ...

    Raises:
        HTTPException 403 for an unknown role or one not in ``allowed_roles``
    """
    allowed = tuple(allowed_roles)

    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        role = caller_role(current_user)
        if role is None:
            raise _forbidden("Invalid role in token")
        if role not in allowed:
            raise _forbidden(f"Access denied. Required role: {', '.join(r.value for r in allowed)}")
        return current_user

    return role_checker


class LoadAccessGuard:
    """
    Who sees which load, and who may act on it.

    Visibility:
        SHIPPER, ADMIN: loads of their tenant
        DRIVER: loads assigned to them
        TRANSPORTER: loads assigned to their tenant plus the open marketplace
        SUPER_ADMIN: everything
        RECEIVER: loads addressed to their email
    """

    def visibility_filter(self, current_user: dict):
        """WHERE clause for the caller's loads; None when they see everything."""
        role = caller_role(current_user)
        tenant_id = current_user.get("tenant_id")

        if role == UserRole.SUPER_ADMIN:
            return None
        if role in (UserRole.SHIPPER, UserRole.ADMIN):
            return Load.tenant_id == tenant_id
        if role == UserRole.DRIVER:
            return Load.assigned_driver_id == current_user.get("user_id")
        if role == UserRole.TRANSPORTER:
            return or_(Load.assigned_transporter_id == tenant_id, Load.status == LoadStatus.ACTIVE)
        if role == UserRole.RECEIVER:
            return Load.receiver_email == (current_user.get("email") or "").lower()
        # Unknown roles see nothing
        return Load.id.is_(None)

    async def get_visible_load(self, db: AsyncSession, load_id: str, current_user: dict) -> Load:
        """
        Raises:
            HTTPException 404 if the load does not exist or is not visible
        """
        query = select(Load).where(Load.id == load_id)
        clause = self.visibility_filter(current_user)
        if clause is not None:
            query = query.where(clause)

        load = (await db.execute(query)).scalar_one_or_none()
        if load is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Load not found")
        return load

    def enforce_assigned_driver(self, load: Load, current_user: dict):
        """Only the assigned driver may advance the trip or report its position."""
        if load.assigned_driver_id != current_user.get("user_id"):
            raise _forbidden("This load is not assigned to you")

    def enforce_trip_participant(self, load: Load, current_user: dict, allow_receiver: bool = False):
        """The assigned driver, the assigned transporter tenant and, optionally, the receiver."""
        role = caller_role(current_user)
        if load.assigned_driver_id == current_user.get("user_id"):
            return
        if role == UserRole.TRANSPORTER and load.assigned_transporter_id == current_user.get("tenant_id"):
            return
        if allow_receiver and role == UserRole.RECEIVER and self._is_receiver(load, current_user):
            return
        raise _forbidden("Only participants of this trip can perform this action")

    def enforce_tenant_owner(self, load: Load, current_user: dict):
        """Payments are made by the shipper tenant that owns the load."""
        if caller_role(current_user) == UserRole.SUPER_ADMIN:
            return
        if load.tenant_id != current_user.get("tenant_id"):
            raise _forbidden("Only the owning tenant can pay for this load")

    @staticmethod
    def _is_receiver(load: Load, current_user: dict) -> bool:
        email: Optional[str] = current_user.get("email")
        return bool(email) and bool(load.receiver_email) and email.lower() == load.receiver_email.lower()
