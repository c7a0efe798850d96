"""
Rider Registry API endpoints.

Any account may apply; admins review, approve, reject and deactivate.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from delivery_backend.app.db.session import get_db
from delivery_backend.app.models.account import Account
from delivery_backend.app.schemas.rider import (
    ApprovalResponse, RiderApply, RiderListResponse, RiderResponse, RoleSyncResponse,
)
from delivery_backend.app.core.dependencies import get_current_account
from delivery_backend.app.core.exceptions import ResourceNotFoundError
from delivery_backend.app.core.guards import require_admin
from delivery_backend.app.domain.riders.registry import RiderRegistry
from delivery_backend.app.services.audit import log_event, AuditAction

router = APIRouter(prefix="/riders", tags=["Riders"])


def get_registry(db: AsyncSession = Depends(get_db)) -> RiderRegistry:
    return RiderRegistry(db)


def _page(items, total, page, limit, page_count) -> RiderListResponse:
    return RiderListResponse(
        items=[RiderResponse.model_validate(r) for r in items],
        total=total,
        page=page,
        page_size=limit,
        page_count=page_count,
    )


@router.post("", response_model=RiderResponse, status_code=status.HTTP_201_CREATED)
async def apply(
    application: RiderApply,
    account: Account = Depends(get_current_account),
    registry: RiderRegistry = Depends(get_registry),
):
    """
    Submit a rider application for the calling account.

    Phone and NID must not appear on any other application.
    """
    rider = await registry.apply(application.model_dump(), account.email)
    return RiderResponse.model_validate(rider)


@router.get("/me", response_model=RiderResponse)
async def get_my_application(
    account: Account = Depends(get_current_account),
    registry: RiderRegistry = Depends(get_registry),
):
    rider = await registry.get_by_creator(account.email)
    if rider is None:
        raise ResourceNotFoundError("Rider application")
    return RiderResponse.model_validate(rider)


@router.get("/pending", response_model=RiderListResponse)
async def list_pending(
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(10, ge=1, le=100, description="Items per page"),
    admin: Account = Depends(require_admin),
    registry: RiderRegistry = Depends(get_registry),
):
    items, total, page_count = await registry.list_pending(page, limit)
    return _page(items, total, page, limit, page_count)


@router.get("/active", response_model=RiderListResponse)
async def list_active(
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(10, ge=1, le=100, description="Items per page"),
    search: Optional[str] = Query(None, description="Name or phone substring"),
    admin: Account = Depends(require_admin),
    registry: RiderRegistry = Depends(get_registry),
):
    items, total, page_count = await registry.list_approved(page, limit, search)
    return _page(items, total, page, limit, page_count)


@router.patch("/{rider_id}/approve", response_model=ApprovalResponse)
async def approve(
    rider_id: int = Path(..., description="Rider application ID"),
    admin: Account = Depends(require_admin),
    registry: RiderRegistry = Depends(get_registry),
    db: AsyncSession = Depends(get_db),
):
    """
    Approve a pending application and give the applicant the rider role.

    If the applicant's account is gone the approval is kept and 404 is
    returned with the partial outcome in ``details``.
    """
    try:
        outcome = await registry.approve(rider_id)
    except ResourceNotFoundError as exc:
        if exc.details.get("rider_modified"):
            await log_event(
                db=db,
                action=AuditAction.RIDER_APPROVED,
                actor_email=admin.email,
                target_type="rider",
                target_id=rider_id,
                metadata={k: exc.details[k] for k in ("rider_modified", "account_matched", "account_modified")},
            )
        raise

    await log_event(
        db=db,
        action=AuditAction.RIDER_APPROVED,
        actor_email=admin.email,
        target_type="rider",
        target_id=rider_id,
        metadata=outcome,
    )
    return ApprovalResponse(**outcome)


@router.patch("/{rider_id}/sync-role", response_model=RoleSyncResponse)
async def sync_role(
    rider_id: int = Path(..., description="Rider application ID"),
    admin: Account = Depends(require_admin),
    registry: RiderRegistry = Depends(get_registry),
    db: AsyncSession = Depends(get_db),
):
    """Retry the account-role step of an approval."""
    outcome = await registry.sync_account_role(rider_id)
    if outcome["account_modified"]:
        await log_event(
            db=db,
            action=AuditAction.RIDER_ROLE_SYNCED,
            actor_email=admin.email,
            target_type="rider",
            target_id=rider_id,
        )
    return RoleSyncResponse(**outcome)


@router.patch("/{rider_id}/reject", response_model=RiderResponse)
async def reject(
    rider_id: int = Path(..., description="Rider application ID"),
    admin: Account = Depends(require_admin),
    registry: RiderRegistry = Depends(get_registry),
    db: AsyncSession = Depends(get_db),
):
    rider = await registry.reject(rider_id)
    await log_event(
        db=db,
        action=AuditAction.RIDER_REJECTED,
        actor_email=admin.email,
        target_type="rider",
        target_id=rider_id,
    )
    return RiderResponse.model_validate(rider)


@router.patch("/{rider_id}/deactivate", response_model=RiderResponse)
async def deactivate(
    rider_id: int = Path(..., description="Rider application ID"),
    admin: Account = Depends(require_admin),
    registry: RiderRegistry = Depends(get_registry),
    db: AsyncSession = Depends(get_db),
):
    """
    Deactivate an approved rider.

    The applicant's account keeps the ``rider`` role; change it separately
    through the role endpoint if needed.
    """
    rider = await registry.deactivate(rider_id)
    await log_event(
        db=db,
        action=AuditAction.RIDER_DEACTIVATED,
        actor_email=admin.email,
        target_type="rider",
        target_id=rider_id,
    )
    return RiderResponse.model_validate(rider)
