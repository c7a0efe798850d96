"""
Account API endpoints.

Login upsert, self view, logout and the admin search/role-change tools.
"""

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from delivery_backend.app.db.session import get_db
from delivery_backend.app.models.account import Account
from delivery_backend.app.schemas.account import (
    AccountResponse, AccountSearchResponse, LogoutResponse, RoleChangeRequest,
    RoleChangeResponse, RoleResponse, UpsertResponse, UserUpsert,
)
from delivery_backend.app.core.dependencies import get_current_account, get_identity
from delivery_backend.app.core.guards import require_admin
from delivery_backend.app.core.redis_client import get_redis
from delivery_backend.app.core.token_revocation import revoke_token
from delivery_backend.app.domain.accounts.directory import AccountDirectory
from delivery_backend.app.services.audit import log_event, AuditAction

router = APIRouter(prefix="/users", tags=["Users"])


def get_directory(db: AsyncSession = Depends(get_db)) -> AccountDirectory:
    return AccountDirectory(db)


@router.post("", response_model=UpsertResponse)
async def upsert_on_login(
    profile: UserUpsert,
    identity: dict = Depends(get_identity),
    directory: AccountDirectory = Depends(get_directory),
):
    """
    Create or refresh the caller's account after a successful login.

    ``uid`` and ``email`` are taken from the verified identity; the body only
    carries profile fields. Existing roles are never changed here.
    """
    is_new, account = await directory.upsert_on_login(
        uid=identity["subject"],
        email=identity["email"],
        name=profile.name,
        photo_url=profile.photo_url,
        provider=profile.provider,
    )
    return UpsertResponse(is_new_user=is_new, id=account.id)


@router.get("/me", response_model=AccountResponse)
async def get_me(account: Account = Depends(get_current_account)):
    return AccountResponse.model_validate(account)


@router.get("/me/role", response_model=RoleResponse)
async def get_my_role(account: Account = Depends(get_current_account)):
    return RoleResponse(role=account.role)


@router.post("/logout", response_model=LogoutResponse)
async def logout(
    identity: dict = Depends(get_identity),
    redis_client=Depends(get_redis),
):
    """Revoke the presented identity assertion until it expires."""
    await revoke_token(redis_client, identity["token"], identity["subject"], identity.get("exp"))
    return LogoutResponse(message="Logged out")


@router.get("/search", response_model=AccountSearchResponse)
async def search_accounts(
    q: str = Query(..., description="Substring of email or name, at least 2 characters"),
    limit: int = Query(10, description="Clamped to 1..20"),
    admin: Account = Depends(require_admin),
    directory: AccountDirectory = Depends(get_directory),
):
    accounts = await directory.search(q, limit)
    return AccountSearchResponse(users=[AccountResponse.model_validate(a) for a in accounts])


@router.patch("/{account_id}/role", response_model=RoleChangeResponse, status_code=status.HTTP_200_OK)
async def change_role(
    request: RoleChangeRequest,
    account_id: int = Path(..., description="Account ID"),
    admin: Account = Depends(require_admin),
    directory: AccountDirectory = Depends(get_directory),
    db: AsyncSession = Depends(get_db),
):
    """
    Change an account's role (admin-only).

    Admins cannot demote themselves.
    """
    modified = await directory.change_role(account_id, request.role, admin.email)
    target = await directory.get(account_id)

    if modified:
        await log_event(
            db=db,
            action=AuditAction.ROLE_CHANGED,
            actor_email=admin.email,
            target_type="account",
            target_id=account_id,
            metadata={"new_role": target.role.value},
        )

    return RoleChangeResponse(modified=modified, id=account_id, role=target.role)
