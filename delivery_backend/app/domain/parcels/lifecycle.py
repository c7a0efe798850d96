"""
Parcel Lifecycle Engine (Domain Logic).

Owns parcel creation, rider assignment/unassignment and the rider-driven
status progression. Each transition is one guarded UPDATE plus one
appended status history row, committed together.
"""

import logging
import secrets
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from delivery_backend.app.core.exceptions import (
    AlreadyProcessedError,
    ConflictError,
    InsufficientPermissionsError,
    InvalidArgumentError,
    InvalidStateError,
    InvalidTransitionError,
    ResourceNotFoundError,
)
from delivery_backend.app.db.session import utcnow
from delivery_backend.app.db.store import commit_unique, conditional_update, insert_unique, paginate
from delivery_backend.app.domain.parcels.state_machine import can_assign, can_unassign, next_rider_status
from delivery_backend.app.domain.riders.registry import RiderRegistry
from delivery_backend.app.models.account import Account
from delivery_backend.app.models.enums import AccountRole
from delivery_backend.app.models.parcel import Parcel, ParcelStatusEvent
from delivery_backend.app.models.parcel_enums import ParcelStatus, PaymentType
from delivery_backend.app.models.payment import PaymentRecord
from delivery_backend.app.models.rider_enums import RiderStatus

logger = logging.getLogger("delivery.parcels")

DUPLICATE_TRACKING_MESSAGE = "A parcel with this tracking ID already exists"


def generate_tracking_id() -> str:
    """Readable public id: TRK-YYYYMMDD-XXXXXXXX."""
    return f"TRK-{utcnow().strftime('%Y%m%d')}-{secrets.token_hex(4).upper()}"


def _parse_enum(enum_cls, value: Optional[str], field: str):
    if value is None:
        return None
    try:
        return enum_cls(value.strip().lower())
    except ValueError:
        raise InvalidArgumentError(
            f"Invalid {field} '{value}'",
            details={"field": field, "allowed": [member.value for member in enum_cls]},
        )


class ParcelLifecycleEngine:
    """Parcel operations bound to one database session."""

    def __init__(self, db: AsyncSession, riders: Optional[RiderRegistry] = None):
        self.db = db
        self.riders = riders or RiderRegistry(db)

    # Reads

    async def get(self, parcel_id: int) -> Optional[Parcel]:
        result = await self.db.execute(
            select(Parcel)
            .where(Parcel.id == parcel_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def require(self, parcel_id: int) -> Parcel:
        parcel = await self.get(parcel_id)
        if parcel is None:
            raise ResourceNotFoundError("Parcel", parcel_id)
        return parcel

    async def track(self, tracking_id: str) -> Parcel:
        result = await self.db.execute(select(Parcel).where(Parcel.tracking_id == tracking_id))
        parcel = result.scalar_one_or_none()
        if parcel is None:
            raise ResourceNotFoundError("Parcel", tracking_id)
        return parcel

    async def can_read(self, parcel: Parcel, account: Account) -> bool:
        """Creator, any admin, or the rider currently assigned."""
        if account.role == AccountRole.ADMIN or parcel.created_by_email == account.email:
            return True
        if account.role == AccountRole.RIDER and parcel.assigned_rider_id is not None:
            rider = await self.riders.get_approved_for(account.email)
            return rider is not None and rider.id == parcel.assigned_rider_id
        return False

    @staticmethod
    def _newest_first(query):
        return query.order_by(Parcel.created_at.desc(), Parcel.id.desc())

    async def list_all(self, page: int, limit: int) -> Tuple[List[Parcel], int, int]:
        return await paginate(self.db, self._newest_first(select(Parcel)), page, limit)

    async def list_by_creator(self, email: str, page: int, limit: int) -> Tuple[List[Parcel], int, int]:
        query = select(Parcel).where(Parcel.created_by_email == email)
        return await paginate(self.db, self._newest_first(query), page, limit)

    async def list_by_rider(
        self, rider_id: int, page: int, limit: int, status: Optional[str] = None
    ) -> Tuple[List[Parcel], int, int]:
        query = select(Parcel).where(Parcel.assigned_rider_id == rider_id)
        parcel_status = _parse_enum(ParcelStatus, status, "status")
        if parcel_status is not None:
            query = query.where(Parcel.status == parcel_status)
        return await paginate(self.db, self._newest_first(query), page, limit)

    async def list_admin(
        self,
        page: int,
        limit: int,
        payment_type: Optional[str] = None,
        status: Optional[str] = None,
    ) -> Tuple[List[Parcel], int, int]:
        query = select(Parcel)
        payment = _parse_enum(PaymentType, payment_type, "payment_type")
        if payment is not None:
            query = query.where(Parcel.payment_type == payment)
        parcel_status = _parse_enum(ParcelStatus, status, "status")
        if parcel_status is not None:
            query = query.where(Parcel.status == parcel_status)
        return await paginate(self.db, self._newest_first(query), page, limit)

    # Writes

    async def create_parcel(self, payload: Dict[str, Any], acting_email: str) -> Parcel:
        """
        Create a parcel in ``created`` status.

        ``payment_type`` is lowercased, ``created_by_email`` defaults to the
        caller and the history is seeded with a ``created`` entry unless the
        caller supplied one.

        Raises:
            InvalidArgumentError: Unknown payment type, or a supplied history
                entry with a status other than ``created``
            ConflictError: Tracking ID already taken
        """
        data = dict(payload)
        supplied_history = data.pop("status_history", None) or []
        now = utcnow()

        payment_type = _parse_enum(PaymentType, data.pop("payment_type", None) or PaymentType.COD.value, "payment_type")
        created_by_email = (data.pop("created_by_email", None) or acting_email).lower()
        tracking_id = data.pop("tracking_id", None) or generate_tracking_id()

        history = []
        for entry in supplied_history:
            if entry.get("status") != ParcelStatus.CREATED.value:
                raise InvalidArgumentError(
                    "A new parcel's status history may only contain 'created' entries",
                    details={"status": entry.get("status")},
                )
            history.append(ParcelStatusEvent(
                status=ParcelStatus.CREATED,
                time=entry.get("time") or now,
                by=entry.get("by") or created_by_email,
                by_role=entry.get("by_role"),
                extra=entry.get("extra"),
            ))
        if not history:
            history.append(ParcelStatusEvent(
                status=ParcelStatus.CREATED, time=now, by=created_by_email, by_role=AccountRole.USER.value,
            ))

        parcel = Parcel(
            **data,
            tracking_id=tracking_id,
            payment_type=payment_type,
            status=ParcelStatus.CREATED,
            created_by_email=created_by_email,
            created_at=now,
            updated_at=now,
            status_history=history,
        )
        await insert_unique(self.db, parcel, DUPLICATE_TRACKING_MESSAGE)
        await commit_unique(self.db, DUPLICATE_TRACKING_MESSAGE)

        logger.info("Parcel %s (%s) created by %s", parcel.id, tracking_id, acting_email)
        return await self.require(parcel.id)

    async def _was_picked_up(self, parcel_id: int) -> bool:
        result = await self.db.execute(
            select(ParcelStatusEvent.id)
            .where(ParcelStatusEvent.parcel_id == parcel_id, ParcelStatusEvent.status == ParcelStatus.PICKED_UP)
            .limit(1)
        )
        return result.first() is not None

    async def _commit_transition(self, matched: int, event: ParcelStatusEvent, lost_race_error: Exception):
        if not matched:
            await self.db.rollback()
            raise lost_race_error
        self.db.add(event)
        await self.db.commit()

    async def assign_rider(self, parcel_id: int, rider_id: int, acting_email: str) -> Dict[str, Any]:
        """
        Assign an approved rider and freeze a snapshot of their identity.

        Raises:
            ResourceNotFoundError: Parcel or rider absent
            InvalidStateError: Parcel delivered, or rider not approved
            ConflictError: Parcel changed between read and write
        """
        parcel = await self.require(parcel_id)
        if not can_assign(parcel.status):
            logger.warning("Assign refused: parcel %s already delivered", parcel_id)
            raise InvalidStateError(
                "Cannot assign a rider to a delivered parcel",
                details={"status": parcel.status.value},
            )

        rider = await self.riders.get(rider_id)
        if rider is None:
            raise ResourceNotFoundError("Rider", rider_id)
        if rider.status != RiderStatus.APPROVED:
            logger.warning("Assign refused: rider %s is %s", rider_id, rider.status.value)
            raise InvalidStateError(
                "Rider is not approved",
                details={"rider_id": rider_id, "status": rider.status.value},
            )

        snapshot = rider.snapshot()
        now = utcnow()
        matched = await conditional_update(
            self.db,
            Parcel,
            [Parcel.id == parcel_id, Parcel.status == parcel.status],
            {
                "status": ParcelStatus.ASSIGNED,
                "assigned_rider_id": rider.id,
                "assigned_rider": snapshot,
                "assigned_rider_at": now,
                "updated_at": now,
            },
        )
        event = ParcelStatusEvent(
            parcel_id=parcel_id,
            status=ParcelStatus.ASSIGNED,
            time=now,
            by=acting_email,
            by_role=AccountRole.ADMIN.value,
            extra={"rider": snapshot},
        )
        await self._commit_transition(
            matched, event, ConflictError("Parcel changed while assigning a rider", details={"id": parcel_id})
        )

        logger.info("Parcel %s assigned to rider %s by %s", parcel_id, rider.id, acting_email)
        return snapshot

    async def unassign_rider(self, parcel_id: int, acting_email: str) -> Parcel:
        """
        Remove the assigned rider and return the parcel to ``created``.

        Raises:
            ResourceNotFoundError: Parcel absent
            InvalidStateError: Parcel picked up at any point (including after a
                re-assignment), in transit or delivered, or no rider assigned
            AlreadyProcessedError: Parcel changed between read and write
        """
        parcel = await self.require(parcel_id)
        if not can_unassign(parcel.status):
            logger.warning("Unassign refused: parcel %s is %s", parcel_id, parcel.status.value)
            raise InvalidStateError(
                f"Cannot unassign a rider from a parcel that is '{parcel.status.value}'",
                details={"status": parcel.status.value},
            )
        if parcel.assigned_rider_id is None:
            raise InvalidStateError("No rider is assigned to this parcel", details={"status": parcel.status.value})
        # A parcel re-assigned after pickup is back in ``assigned`` but has still been handled
        if await self._was_picked_up(parcel_id):
            logger.warning("Unassign refused: parcel %s has already been picked up", parcel_id)
            raise InvalidStateError(
                "Cannot unassign a rider from a parcel that has already been picked up",
                details={"status": parcel.status.value},
            )

        removed = parcel.assigned_rider
        now = utcnow()
        matched = await conditional_update(
            self.db,
            Parcel,
            [
                Parcel.id == parcel_id,
                Parcel.status == parcel.status,
                Parcel.assigned_rider_id == parcel.assigned_rider_id,
            ],
            {
                "status": ParcelStatus.CREATED,
                "assigned_rider_id": None,
                "assigned_rider": None,
                "assigned_rider_at": None,
                "unassigned_at": now,
                "updated_at": now,
            },
        )
        event = ParcelStatusEvent(
            parcel_id=parcel_id,
            status=ParcelStatus.CREATED,
            time=now,
            by=acting_email,
            by_role=AccountRole.ADMIN.value,
            extra={"event": "rider_unassigned", "removed_rider": removed},
        )
        await self._commit_transition(
            matched, event, AlreadyProcessedError("Parcel changed while unassigning", details={"id": parcel_id})
        )

        logger.info("Rider removed from parcel %s by %s", parcel_id, acting_email)
        return await self.require(parcel_id)

    async def advance_by_rider(self, parcel_id: int, new_status: str, acting_email: str) -> Parcel:
        """
        Move a parcel one step forward on behalf of its assigned rider.

        Raises:
            InsufficientPermissionsError: Caller has no approved rider
                application, or the parcel is assigned to someone else
            ResourceNotFoundError: Parcel absent
            InvalidTransitionError: ``new_status`` is not the next status
            AlreadyProcessedError: Parcel changed between read and write
        """
        rider = await self.riders.get_approved_for(acting_email)
        if rider is None:
            raise InsufficientPermissionsError("No approved rider profile for this account")

        parcel = await self.require(parcel_id)
        if parcel.assigned_rider_id != rider.id:
            logger.warning("Rider %s tried to update parcel %s assigned to %s",
                           rider.id, parcel_id, parcel.assigned_rider_id)
            raise InsufficientPermissionsError("This parcel is not assigned to you")

        expected = next_rider_status(parcel.status)
        if expected is None or new_status != expected.value:
            raise InvalidTransitionError(
                current=parcel.status.value,
                requested=new_status,
                expected=expected.value if expected else None,
            )

        now = utcnow()
        values = {"status": expected, "updated_at": now}
        if expected == ParcelStatus.DELIVERED:
            values["delivered_at"] = now

        matched = await conditional_update(
            self.db,
            Parcel,
            [Parcel.id == parcel_id, Parcel.status == parcel.status, Parcel.assigned_rider_id == rider.id],
            values,
        )
        event = ParcelStatusEvent(
            parcel_id=parcel_id,
            status=expected,
            time=now,
            by=acting_email,
            by_role=AccountRole.RIDER.value,
            extra={"rider_id": rider.id},
        )
        await self._commit_transition(
            matched, event,
            AlreadyProcessedError(
                "Parcel status changed concurrently",
                details={"id": parcel_id, "expected_current": parcel.status.value},
            ),
        )

        logger.info("Parcel %s moved %s -> %s by rider %s",
                    parcel_id, parcel.status.value, expected.value, rider.id)
        return await self.require(parcel_id)

    async def delete_parcel(self, parcel_id: int) -> Parcel:
        """
        Delete a parcel and its history.

        Raises:
            InvalidStateError: A payment is already recorded for the parcel
        """
        parcel = await self.require(parcel_id)

        paid = await self.db.execute(select(PaymentRecord.id).where(PaymentRecord.parcel_id == parcel_id))
        if paid.scalar_one_or_none() is not None:
            raise InvalidStateError("Cannot delete a parcel with a recorded payment", details={"id": parcel_id})

        await self.db.delete(parcel)
        await self.db.commit()
        logger.info("Parcel %s deleted", parcel_id)
        return parcel
