"""
Audit trail of loads.

One row per business event on a load: who did it, in which role, and the
request that carried it. Location fixes are not audited; the location
history records them.
"""

import logging
from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from roadhive.app.core.observability import correlation_id
from roadhive.app.models.audit_log import AuditLog

logger = logging.getLogger("roadhive.audit")


class AuditAction:
    LOAD_CREATED = "LOAD_CREATED"
    BID_PLACED = "BID_PLACED"

    # Trip lifecycle
    TRIP_STARTED = "TRIP_STARTED"
    TRIP_PAUSED = "TRIP_PAUSED"
    TRIP_RESUMED = "TRIP_RESUMED"
    TRIP_REACHED = "TRIP_REACHED"
    TRIP_COMPLETED = "TRIP_COMPLETED"

    # Delivery verification
    OTP_REQUESTED = "OTP_REQUESTED"
    OTP_RESENT = "OTP_RESENT"
    OTP_FAILED = "OTP_FAILED"

    # Payments
    ADVANCE_PAID = "ADVANCE_PAID"
    BALANCE_PAID = "BALANCE_PAID"


async def log_user_event(
    db: AsyncSession,
    action: str,
    current_user: dict,
    load_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Record an event performed by the bearer of the current token.

    Commits on its own, after the change it describes has been committed.

    Args:
        db: Database session
        action: one of the AuditAction constants
        current_user: token claims of the actor
        load_id: load the event concerns
        metadata: extra context, e.g. ``{"from": "Assigned", "to": "In Transit"}``
    """
    context = dict(metadata or {})
    request_id = correlation_id.get()
    if request_id != "-":
        context["correlation_id"] = request_id

    entry = AuditLog(
        actor_id=current_user.get("user_id"),
        actor_role=current_user.get("role"),
        action=action,
        load_id=load_id,
        meta_data=context or None,
    )
    db.add(entry)
    await db.commit()
    await db.refresh(entry)

    logger.info("%s on load %s by %s", action, load_id, entry.actor_id)
    return entry


async def get_load_audit_trail(
    db: AsyncSession,
    load_id: str,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """Events of one load, most recent first, optionally of a single action."""
    query = select(AuditLog).where(AuditLog.load_id == load_id)
    if action:
        query = query.where(AuditLog.action == action)
    query = query.order_by(desc(AuditLog.timestamp), desc(AuditLog.id)).limit(limit)

    result = await db.execute(query)
    return result.scalars().all()
