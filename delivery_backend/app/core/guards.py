"""
Security guards for role-based and ownership-based access control.

Roles are read from the Account row on every request, so a role change
takes effect without re-issuing assertions.
"""

from typing import List
from fastapi import Depends
from delivery_backend.app.core.dependencies import get_current_account
from delivery_backend.app.core.exceptions import InsufficientPermissionsError
from delivery_backend.app.models.account import Account
from delivery_backend.app.models.enums import AccountRole


def require_role(allowed_roles: List[AccountRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.patch("/parcels/{parcel_id}/status")
        async def advance(account: Account = Depends(require_role([AccountRole.RIDER]))):
            ...

    Args:
        allowed_roles: Roles allowed to access the endpoint

    Returns:
        FastAPI dependency returning the caller's Account

    Raises:
        InsufficientPermissionsError if the account's role is not allowed
    """
    async def role_checker(account: Account = Depends(get_current_account)) -> Account:
        if account.role not in allowed_roles:
            raise InsufficientPermissionsError(
                f"Access denied. Required role: {', '.join([r.value for r in allowed_roles])}"
            )
        return account

    return role_checker


require_admin = require_role([AccountRole.ADMIN])
require_rider = require_role([AccountRole.RIDER])


def is_admin(account: Account) -> bool:
    return account.role == AccountRole.ADMIN


class OwnershipGuard:
    """
    Ownership guard for records created by a customer account.

    Admins pass every check; everyone else must match the record's
    ``created_by_email``.
    """

    def allows(self, owner_email: str, account: Account) -> bool:
        if is_admin(account):
            return True
        return bool(account.email) and account.email == owner_email

    def enforce(self, owner_email: str, account: Account, resource_name: str = "resource"):
        """
        Raise 403 if the account neither owns the resource nor is an admin.

        Raises:
            InsufficientPermissionsError if ownership check fails
        """
        if not self.allows(owner_email, account):
            raise InsufficientPermissionsError(
                f"Access denied. You do not have permission to access this {resource_name}."
            )
