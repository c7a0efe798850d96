"""
Admin API Endpoints.

Read access to the audit trail of admin actions.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from delivery_backend.app.db.session import get_db
from delivery_backend.app.models.account import Account
from delivery_backend.app.schemas.admin import AuditLogResponse, AuditTrailResponse
from delivery_backend.app.core.guards import require_admin
from delivery_backend.app.services.audit import get_audit_trail

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/audit-logs", response_model=AuditTrailResponse)
async def get_audit_logs(
    action: Optional[str] = Query(None, description="Filter by action"),
    target_type: Optional[str] = Query(None, description="Filter by target type"),
    limit: int = Query(100, ge=1, le=1000, description="Max results"),
    admin: Account = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Get audit trail (admin-only).

    Returns recent admin actions, newest first.
    """
    logs = await get_audit_trail(db=db, action=action, target_type=target_type, limit=limit)
    return AuditTrailResponse(
        logs=[AuditLogResponse.model_validate(entry) for entry in logs],
        total=len(logs),
    )
