"""
Parcel Lifecycle API endpoints.

Customers create and read their parcels, admins assign and unassign
riders, and the assigned rider walks the parcel to ``delivered``.
Tracking by public id needs no identity.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from delivery_backend.app.db.session import get_db
from delivery_backend.app.models.account import Account
from delivery_backend.app.schemas.parcel import (
    AssignRequest, AssignResponse, DeleteResponse, ParcelCreate, ParcelListResponse,
    ParcelResponse, PublicTrackingResponse, StatusUpdateRequest, StatusUpdateResponse,
)
from delivery_backend.app.core.dependencies import get_current_account
from delivery_backend.app.core.exceptions import InsufficientPermissionsError
from delivery_backend.app.core.guards import OwnershipGuard, is_admin, require_admin, require_rider
from delivery_backend.app.domain.parcels.lifecycle import ParcelLifecycleEngine
from delivery_backend.app.services.audit import log_event, AuditAction

router = APIRouter(prefix="/parcels", tags=["Parcels"])
ownership_guard = OwnershipGuard()


def get_engine(db: AsyncSession = Depends(get_db)) -> ParcelLifecycleEngine:
    return ParcelLifecycleEngine(db)


def _page(parcels, total, page, limit, page_count) -> ParcelListResponse:
    return ParcelListResponse(
        parcels=[ParcelResponse.model_validate(p) for p in parcels],
        total=total,
        page=page,
        page_size=limit,
        page_count=page_count,
    )


@router.get("", response_model=ParcelListResponse)
async def list_all(
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(10, ge=1, le=100, description="Items per page"),
    admin: Account = Depends(require_admin),
    engine: ParcelLifecycleEngine = Depends(get_engine),
):
    parcels, total, page_count = await engine.list_all(page, limit)
    return _page(parcels, total, page, limit, page_count)


@router.get("/mine", response_model=ParcelListResponse)
async def list_mine(
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(10, ge=1, le=100, description="Items per page"),
    email: Optional[str] = Query(None, description="Creator email (admins only)"),
    account: Account = Depends(get_current_account),
    engine: ParcelLifecycleEngine = Depends(get_engine),
):
    """Parcels created by the caller; admins may look up another creator."""
    creator = account.email
    if email and email.lower() != account.email:
        if not is_admin(account):
            raise InsufficientPermissionsError("Only admins may list another account's parcels")
        creator = email.lower()

    parcels, total, page_count = await engine.list_by_creator(creator, page, limit)
    return _page(parcels, total, page, limit, page_count)


@router.get("/admin", response_model=ParcelListResponse)
async def list_admin(
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(10, ge=1, le=100, description="Items per page"),
    payment_type: Optional[str] = Query(None, description="cod or paid"),
    parcel_status: Optional[str] = Query(None, alias="status", description="Parcel status"),
    admin: Account = Depends(require_admin),
    engine: ParcelLifecycleEngine = Depends(get_engine),
):
    parcels, total, page_count = await engine.list_admin(page, limit, payment_type, parcel_status)
    return _page(parcels, total, page, limit, page_count)


@router.get("/rider", response_model=ParcelListResponse)
async def list_for_rider(
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(10, ge=1, le=100, description="Items per page"),
    parcel_status: Optional[str] = Query(None, alias="status", description="Parcel status"),
    rider_account: Account = Depends(require_rider),
    engine: ParcelLifecycleEngine = Depends(get_engine),
):
    """Parcels currently assigned to the calling rider."""
    rider = await engine.riders.get_approved_for(rider_account.email)
    if rider is None:
        raise InsufficientPermissionsError("No approved rider profile for this account")

    parcels, total, page_count = await engine.list_by_rider(rider.id, page, limit, parcel_status)
    return _page(parcels, total, page, limit, page_count)


@router.get("/track/{tracking_id}", response_model=PublicTrackingResponse)
async def track(
    tracking_id: str = Path(..., min_length=1, max_length=64),
    engine: ParcelLifecycleEngine = Depends(get_engine),
):
    """Public tracking view of a parcel."""
    parcel = await engine.track(tracking_id)
    return PublicTrackingResponse.from_parcel(parcel)


@router.get("/{parcel_id}", response_model=ParcelResponse)
async def get_parcel(
    parcel_id: int = Path(..., description="Parcel ID"),
    account: Account = Depends(get_current_account),
    engine: ParcelLifecycleEngine = Depends(get_engine),
):
    parcel = await engine.require(parcel_id)
    if not await engine.can_read(parcel, account):
        raise InsufficientPermissionsError("Access denied. You do not have permission to access this parcel.")
    return ParcelResponse.model_validate(parcel)


@router.post("", response_model=ParcelResponse, status_code=status.HTTP_201_CREATED)
async def create_parcel(
    parcel_data: ParcelCreate,
    account: Account = Depends(get_current_account),
    engine: ParcelLifecycleEngine = Depends(get_engine),
):
    """
    Create a parcel in ``created`` status.

    Only admins may file a parcel on behalf of another creator.
    """
    payload = parcel_data.model_dump(exclude_none=True)
    creator = payload.get("created_by_email")
    if creator and creator.lower() != account.email and not is_admin(account):
        raise InsufficientPermissionsError("Only admins may create parcels for another account")

    parcel = await engine.create_parcel(payload, account.email)
    return ParcelResponse.model_validate(parcel)


@router.delete("/{parcel_id}", response_model=DeleteResponse)
async def delete_parcel(
    parcel_id: int = Path(..., description="Parcel ID"),
    account: Account = Depends(get_current_account),
    engine: ParcelLifecycleEngine = Depends(get_engine),
    db: AsyncSession = Depends(get_db),
):
    parcel = await engine.require(parcel_id)
    ownership_guard.enforce(parcel.created_by_email, account, "parcel")

    await engine.delete_parcel(parcel_id)
    await log_event(
        db=db,
        action=AuditAction.PARCEL_DELETED,
        actor_email=account.email,
        target_type="parcel",
        target_id=parcel_id,
        metadata={"tracking_id": parcel.tracking_id},
    )
    return DeleteResponse(deleted=True, id=parcel_id)


@router.patch("/{parcel_id}/assign", response_model=AssignResponse)
async def assign_rider(
    request: AssignRequest,
    parcel_id: int = Path(..., description="Parcel ID"),
    admin: Account = Depends(require_admin),
    engine: ParcelLifecycleEngine = Depends(get_engine),
    db: AsyncSession = Depends(get_db),
):
    """
    Assign an approved rider to a parcel (admin-only).

    Validates:
    - Parcel exists and is not delivered
    - Rider exists and is approved
    """
    snapshot = await engine.assign_rider(parcel_id, request.rider_id, admin.email)
    await log_event(
        db=db,
        action=AuditAction.RIDER_ASSIGNED,
        actor_email=admin.email,
        target_type="parcel",
        target_id=parcel_id,
        metadata={"rider": snapshot},
    )
    return AssignResponse(parcel_id=parcel_id, status="assigned", assigned_rider=snapshot)


@router.patch("/{parcel_id}/unassign", response_model=ParcelResponse)
async def unassign_rider(
    parcel_id: int = Path(..., description="Parcel ID"),
    admin: Account = Depends(require_admin),
    engine: ParcelLifecycleEngine = Depends(get_engine),
    db: AsyncSession = Depends(get_db),
):
    """Return an assigned parcel to ``created`` (admin-only, before pickup)."""
    parcel = await engine.unassign_rider(parcel_id, admin.email)
    await log_event(
        db=db,
        action=AuditAction.RIDER_UNASSIGNED,
        actor_email=admin.email,
        target_type="parcel",
        target_id=parcel_id,
    )
    return ParcelResponse.model_validate(parcel)


@router.patch("/{parcel_id}/status", response_model=StatusUpdateResponse)
async def advance_status(
    request: StatusUpdateRequest,
    parcel_id: int = Path(..., description="Parcel ID"),
    rider_account: Account = Depends(require_rider),
    engine: ParcelLifecycleEngine = Depends(get_engine),
):
    """
    Move an assigned parcel one step forward (rider-only).

    assigned → picked_up → in_transit → delivered; anything else is refused
    with the expected next status in ``details``.
    """
    parcel = await engine.advance_by_rider(parcel_id, request.status, rider_account.email)
    return StatusUpdateResponse(modified=True, parcel=ParcelResponse.model_validate(parcel))
