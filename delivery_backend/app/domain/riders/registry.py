"""
Rider Registry (Domain Logic).

Owns rider applications and their pending → approved/rejected →
deactivated lifecycle. Every status change is a conditional update scoped
by the expected prior status.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from delivery_backend.app.core.exceptions import (
    AlreadyProcessedError,
    ConflictError,
    ResourceNotFoundError,
)
from delivery_backend.app.db.session import utcnow
from delivery_backend.app.db.store import commit_unique, conditional_update, insert_unique, paginate
from delivery_backend.app.models.account import Account
from delivery_backend.app.models.enums import AccountRole
from delivery_backend.app.models.rider import RiderApplication
from delivery_backend.app.models.rider_enums import RiderStatus

logger = logging.getLogger("delivery.riders")

DUPLICATE_RIDER_MESSAGE = "A rider application with this phone or NID already exists"


class RiderRegistry:
    """Rider application operations bound to one database session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, rider_id: int) -> Optional[RiderApplication]:
        result = await self.db.execute(
            select(RiderApplication)
            .where(RiderApplication.id == rider_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_creator(self, email: str) -> Optional[RiderApplication]:
        """Newest application submitted by an account."""
        result = await self.db.execute(
            select(RiderApplication)
            .where(RiderApplication.created_by_email == email)
            .order_by(RiderApplication.created_at.desc(), RiderApplication.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_approved_for(self, email: str) -> Optional[RiderApplication]:
        """The approved application acting on behalf of an account, if any."""
        result = await self.db.execute(
            select(RiderApplication)
            .where(
                RiderApplication.created_by_email == email,
                RiderApplication.status == RiderStatus.APPROVED,
            )
            .order_by(RiderApplication.approved_at.desc(), RiderApplication.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def apply(self, rider_data: Dict[str, Any], acting_email: str) -> RiderApplication:
        """
        Submit a rider application in ``pending`` status.

        Phone and NID are checked up front for a readable error; the unique
        indexes still catch a concurrent duplicate insert.

        Raises:
            ConflictError: Phone or NID already registered (any status)
        """
        phone = rider_data.get("phone")
        nid = rider_data.get("nid")

        existing = await self.db.execute(
            select(RiderApplication).where(
                or_(RiderApplication.phone == phone, RiderApplication.nid == nid)
            ).limit(1)
        )
        duplicate = existing.scalar_one_or_none()
        if duplicate is not None:
            field = "phone" if duplicate.phone == phone else "nid"
            logger.warning("Duplicate rider application on %s from %s", field, acting_email)
            raise ConflictError(DUPLICATE_RIDER_MESSAGE, details={"field": field})

        now = utcnow()
        rider = RiderApplication(
            **rider_data,
            created_by_email=acting_email,
            status=RiderStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        await insert_unique(self.db, rider, DUPLICATE_RIDER_MESSAGE)
        await commit_unique(self.db, DUPLICATE_RIDER_MESSAGE)

        logger.info("Rider application %s submitted by %s", rider.id, acting_email)
        return rider

    async def list_pending(self, page: int, limit: int) -> Tuple[List[RiderApplication], int, int]:
        query = (
            select(RiderApplication)
            .where(RiderApplication.status == RiderStatus.PENDING)
            .order_by(RiderApplication.created_at.desc(), RiderApplication.id.desc())
        )
        return await paginate(self.db, query, page, limit)

    async def list_approved(
        self, page: int, limit: int, search_text: Optional[str] = None
    ) -> Tuple[List[RiderApplication], int, int]:
        """Approved riders, optionally filtered by name or phone substring."""
        query = select(RiderApplication).where(RiderApplication.status == RiderStatus.APPROVED)

        search_text = (search_text or "").strip()
        if search_text:
            query = query.where(or_(
                RiderApplication.name.icontains(search_text, autoescape=True),
                RiderApplication.phone.icontains(search_text, autoescape=True),
            ))

        query = query.order_by(RiderApplication.approved_at.desc(), RiderApplication.id.desc())
        return await paginate(self.db, query, page, limit)

    async def _transition(
        self,
        rider_id: int,
        expected: RiderStatus,
        target: RiderStatus,
        stamp_field: str,
    ) -> None:
        now = utcnow()
        matched = await conditional_update(
            self.db,
            RiderApplication,
            [RiderApplication.id == rider_id, RiderApplication.status == expected],
            {"status": target, stamp_field: now, "updated_at": now},
        )
        if matched:
            await self.db.commit()
            logger.info("Rider %s moved %s -> %s", rider_id, expected.value, target.value)
            return

        await self.db.rollback()
        rider = await self.get(rider_id)
        if rider is None:
            raise ResourceNotFoundError("Rider", rider_id)

        logger.warning(
            "Rider %s not moved to %s: status is %s", rider_id, target.value, rider.status.value
        )
        raise AlreadyProcessedError(
            f"Rider application is '{rider.status.value}', expected '{expected.value}'",
            details={"id": rider_id, "status": rider.status.value, "expected": expected.value},
        )

    async def _promote_account(self, email: str) -> Tuple[bool, bool]:
        """
        Give the linked account the ``rider`` role.

        Returns:
            (account_matched, account_modified)
        """
        result = await self.db.execute(select(Account.id).where(Account.email == email))
        account_id = result.scalar_one_or_none()
        if account_id is None:
            return False, False

        modified = await conditional_update(
            self.db,
            Account,
            [Account.id == account_id, Account.role != AccountRole.RIDER],
            {"role": AccountRole.RIDER, "updated_at": utcnow()},
        )
        await self.db.commit()
        return True, modified > 0

    async def approve(self, rider_id: int) -> Dict[str, bool]:
        """
        Approve a pending application and promote the linked account.

        The two writes are not one transaction. If the account cannot be
        found the rider stays approved and NotFound is raised with the
        partial result in ``details``; ``sync_account_role`` retries the
        account step.

        Raises:
            ResourceNotFoundError: Rider absent, or linked account absent
            AlreadyProcessedError: Rider not pending
        """
        await self._transition(rider_id, RiderStatus.PENDING, RiderStatus.APPROVED, "approved_at")

        rider = await self.get(rider_id)
        account_matched, account_modified = await self._promote_account(rider.created_by_email)

        outcome = {
            "rider_modified": True,
            "account_matched": account_matched,
            "account_modified": account_modified,
        }
        if not account_matched:
            logger.warning(
                "Rider %s approved but account %s not found; role not updated",
                rider_id, rider.created_by_email,
            )
            raise ResourceNotFoundError("Account", details={"email": rider.created_by_email, **outcome})

        return outcome

    async def sync_account_role(self, rider_id: int) -> Dict[str, bool]:
        """
        Re-run the account step of approval for an approved rider.

        Idempotent: succeeds with ``account_modified=False`` when the role
        is already ``rider``.
        """
        rider = await self.get(rider_id)
        if rider is None:
            raise ResourceNotFoundError("Rider", rider_id)
        if rider.status != RiderStatus.APPROVED:
            raise AlreadyProcessedError(
                f"Rider application is '{rider.status.value}', expected 'approved'",
                details={"id": rider_id, "status": rider.status.value, "expected": RiderStatus.APPROVED.value},
            )

        account_matched, account_modified = await self._promote_account(rider.created_by_email)
        if not account_matched:
            raise ResourceNotFoundError(
                "Account",
                details={"email": rider.created_by_email, "account_matched": False, "account_modified": False},
            )
        return {"account_matched": account_matched, "account_modified": account_modified}

    async def reject(self, rider_id: int) -> RiderApplication:
        await self._transition(rider_id, RiderStatus.PENDING, RiderStatus.REJECTED, "rejected_at")
        return await self.get(rider_id)

    async def deactivate(self, rider_id: int) -> RiderApplication:
        # The linked account keeps its rider role; only the application changes.
        await self._transition(rider_id, RiderStatus.APPROVED, RiderStatus.DEACTIVATED, "deactivated_at")
        return await self.get(rider_id)
