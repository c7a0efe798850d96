"""
Account Directory (Domain Logic).

Owns account records: upsert on login, admin search and role changes.
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from delivery_backend.app.core.exceptions import (
    InvalidArgumentError,
    InvalidOperationError,
    ResourceNotFoundError,
)
from delivery_backend.app.db.session import utcnow
from delivery_backend.app.db.store import commit_unique, conditional_update, insert_unique
from delivery_backend.app.models.account import Account
from delivery_backend.app.models.enums import AccountRole, AccountStatus

logger = logging.getLogger("delivery.accounts")

SEARCH_MIN_LENGTH = 2
SEARCH_MAX_LIMIT = 20


class AccountDirectory:
    """Account operations bound to one database session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, account_id: int) -> Optional[Account]:
        result = await self.db.execute(
            select(Account)
            .where(Account.id == account_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> Optional[Account]:
        result = await self.db.execute(select(Account).where(Account.email == email))
        return result.scalar_one_or_none()

    async def upsert_on_login(
        self,
        uid: str,
        email: Optional[str],
        name: Optional[str] = None,
        photo_url: Optional[str] = None,
        provider: Optional[str] = None,
    ) -> Tuple[bool, Account]:
        """
        Create the account on first login, otherwise refresh its profile.

        Existing accounts only get profile and login timestamp fields
        updated; ``role`` is never touched here.

        Returns:
            (is_new_user, account)

        Raises:
            ConflictError: If a concurrent login inserted the same uid/email
        """
        result = await self.db.execute(select(Account).where(Account.uid == uid))
        account = result.scalar_one_or_none()
        now = utcnow()

        if account is None:
            account = Account(
                uid=uid,
                email=email,
                name=name,
                photo_url=photo_url,
                provider=provider,
                role=AccountRole.USER,
                status=AccountStatus.ACTIVE,
                created_at=now,
                updated_at=now,
                last_login_at=now,
            )
            await insert_unique(self.db, account, "Account already exists for this identity")
            await commit_unique(self.db, "Account already exists for this identity")
            logger.info("Account created for %s", email)
            return True, account

        if email:
            account.email = email
        if name is not None:
            account.name = name
        if photo_url is not None:
            account.photo_url = photo_url
        if provider is not None:
            account.provider = provider
        account.last_login_at = now
        account.updated_at = now

        await commit_unique(self.db, "Email is already used by another account")
        return False, account

    async def search(self, query_text: str, limit: int = 10) -> List[Account]:
        """
        Case-insensitive substring search over email and name.

        Raises:
            InvalidArgumentError: If the query is shorter than 2 characters
        """
        query_text = (query_text or "").strip()
        if len(query_text) < SEARCH_MIN_LENGTH:
            raise InvalidArgumentError(
                f"Search query must be at least {SEARCH_MIN_LENGTH} characters",
                details={"query": query_text},
            )

        limit = max(1, min(limit, SEARCH_MAX_LIMIT))
        query = (
            select(Account)
            .where(or_(
                Account.email.icontains(query_text, autoescape=True),
                Account.name.icontains(query_text, autoescape=True),
            ))
            .order_by(Account.created_at.desc(), Account.id.desc())
            .limit(limit)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def change_role(self, target_id: int, new_role: str, acting_email: str) -> bool:
        """
        Set an account's role (admin operation).

        An admin may not move their own account away from ``admin``.

        Returns:
            True if the stored role changed

        Raises:
            InvalidArgumentError: Unknown role value
            ResourceNotFoundError: Target account absent
            InvalidOperationError: Self-demotion attempt
        """
        try:
            role = AccountRole((new_role or "").lower())
        except ValueError:
            raise InvalidArgumentError(
                f"Invalid role '{new_role}'",
                details={"allowed": [r.value for r in AccountRole]},
            )

        target = await self.get(target_id)
        if target is None:
            raise ResourceNotFoundError("Account", target_id)

        if target.email and target.email == acting_email and role != AccountRole.ADMIN:
            logger.warning("Admin %s attempted to demote own account to %s", acting_email, role.value)
            raise InvalidOperationError("Admins cannot remove their own admin role")

        matched = await conditional_update(
            self.db,
            Account,
            [Account.id == target_id, Account.role != role],
            {"role": role, "updated_at": utcnow()},
        )
        await self.db.commit()

        if matched:
            logger.info("Role of account %s changed to %s by %s", target_id, role.value, acting_email)
        return matched > 0
