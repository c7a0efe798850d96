"""
Audit logging service for admin actions.

Entries are written after the action's own commit; an audit write never
rolls back the action it describes.
"""

import logging
from typing import Optional, Dict, Any, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from delivery_backend.app.models.audit_log import AuditLog

logger = logging.getLogger("delivery.audit")


class AuditAction:
    """Standardized audit action constants."""
    ROLE_CHANGED = "ROLE_CHANGED"

    RIDER_APPROVED = "RIDER_APPROVED"
    RIDER_REJECTED = "RIDER_REJECTED"
    RIDER_DEACTIVATED = "RIDER_DEACTIVATED"
    RIDER_ROLE_SYNCED = "RIDER_ROLE_SYNCED"

    RIDER_ASSIGNED = "RIDER_ASSIGNED"
    RIDER_UNASSIGNED = "RIDER_UNASSIGNED"
    PARCEL_DELETED = "PARCEL_DELETED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_email: Optional[str] = None,
    target_type: Optional[str] = None,
    target_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Record an admin action in the audit log.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor_email: Email of the account performing the action
        target_type: Kind of record acted upon (account, rider, parcel)
        target_id: Primary key of that record
        metadata: Additional context as JSON

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor_email=actor_email,
        action=action,
        target_type=target_type,
        target_id=target_id,
        meta_data=metadata,
    )

    db.add(audit_log)
    await db.commit()
    await db.refresh(audit_log)

    logger.info("%s by %s on %s:%s", action, actor_email, target_type, target_id)
    return audit_log


async def get_audit_trail(
    db: AsyncSession,
    action: Optional[str] = None,
    target_type: Optional[str] = None,
    limit: int = 100
) -> List[AuditLog]:
    """
    Retrieve audit trail with optional filtering.

    Returns:
        List of AuditLog instances, most recent first
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if action:
        query = query.where(AuditLog.action == action)

    if target_type:
        query = query.where(AuditLog.target_type == target_type)

    query = query.limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())
