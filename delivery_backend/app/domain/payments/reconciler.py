"""
Payment Reconciler (Domain Logic).

Checks a gateway-reported payment against the parcel's expected amount,
then marks the parcel paid and appends one ledger row in a single
transaction. Must be idempotent per parcel.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from delivery_backend.app.core.config import settings
from delivery_backend.app.core.exceptions import (
    AmountMismatchError,
    ConflictError,
    InvalidArgumentError,
    PaymentNotSucceededError,
    ResourceNotFoundError,
)
from delivery_backend.app.db.session import utcnow
from delivery_backend.app.db.store import commit_unique, conditional_update
from delivery_backend.app.models.parcel import Parcel
from delivery_backend.app.models.parcel_enums import PaymentType
from delivery_backend.app.models.payment import PaymentRecord
from delivery_backend.app.domain.payments.gateway import PaymentIntent

logger = logging.getLogger("delivery.payments")

SUCCEEDED = "succeeded"
ALREADY_RECORDED_MESSAGE = "Payment already recorded for this parcel"
INTENT_REUSED_MESSAGE = "Payment intent already settles another parcel"
PARCEL_METADATA_KEY = "parcel_id"


def expected_amount_minor_units(cod_amount: Optional[float]) -> int:
    """``round(cod_amount * 100)`` with half-up rounding."""
    amount = Decimal(str(cod_amount or 0)) * 100
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PaymentReconciler:
    """Payment operations bound to one database session and one gateway."""

    def __init__(self, db: AsyncSession, gateway):
        self.db = db
        self.gateway = gateway

    async def _require_parcel(self, parcel_id: int) -> Parcel:
        result = await self.db.execute(select(Parcel).where(Parcel.id == parcel_id))
        parcel = result.scalar_one_or_none()
        if parcel is None:
            raise ResourceNotFoundError("Parcel", parcel_id)
        return parcel

    async def _existing_record(self, parcel_id: int) -> Optional[PaymentRecord]:
        result = await self.db.execute(select(PaymentRecord).where(PaymentRecord.parcel_id == parcel_id))
        return result.scalar_one_or_none()

    async def _intent_already_used(self, intent_id: str) -> bool:
        result = await self.db.execute(
            select(PaymentRecord.id).where(PaymentRecord.payment_intent_id == intent_id)
        )
        return result.first() is not None

    async def create_intent(self, parcel_id: int) -> PaymentIntent:
        """
        Open a gateway payment intent for the parcel's expected amount.

        Raises:
            ResourceNotFoundError: Parcel absent
            ConflictError: Parcel already paid
        """
        parcel = await self._require_parcel(parcel_id)
        if parcel.payment_type == PaymentType.PAID or await self._existing_record(parcel_id):
            raise ConflictError(ALREADY_RECORDED_MESSAGE, details={"parcel_id": parcel_id})

        amount = expected_amount_minor_units(parcel.cod_amount)
        intent = await self.gateway.create_intent(
            amount, settings.payment_currency, metadata={PARCEL_METADATA_KEY: str(parcel_id)}
        )
        logger.info("Payment intent %s opened for parcel %s (%s minor units)", intent.id, parcel_id, amount)
        return intent

    async def confirm_payment(
        self,
        parcel_id: int,
        payment_reference: str,
        acting_email: str,
        user_name: Optional[str] = None,
    ) -> PaymentRecord:
        """
        Reconcile a reported payment and record it.

        Raises:
            ResourceNotFoundError: Parcel absent
            ConflictError: A payment is already recorded for the parcel, or the
                intent already settles another parcel
            InvalidArgumentError: The intent was opened for a different parcel
            PaymentNotSucceededError: Gateway status is not ``succeeded``
            AmountMismatchError: Captured amount differs from the expected one
        """
        parcel = await self._require_parcel(parcel_id)
        if await self._existing_record(parcel_id) is not None:
            logger.warning("Duplicate payment confirmation for parcel %s", parcel_id)
            raise ConflictError(ALREADY_RECORDED_MESSAGE, details={"parcel_id": parcel_id})

        intent = await self.gateway.retrieve_intent(payment_reference)
        tagged_parcel = intent.metadata.get(PARCEL_METADATA_KEY)
        if tagged_parcel is not None and tagged_parcel != str(parcel_id):
            logger.warning("Payment %s was opened for parcel %s, not %s", intent.id, tagged_parcel, parcel_id)
            raise InvalidArgumentError(
                "Payment intent was opened for a different parcel",
                details={"parcel_id": parcel_id, "intent_parcel_id": tagged_parcel},
            )
        if await self._intent_already_used(intent.id):
            logger.warning("Payment %s already settles another parcel", intent.id)
            raise ConflictError(INTENT_REUSED_MESSAGE, details={"payment_intent_id": intent.id})

        if intent.status != SUCCEEDED:
            logger.warning("Payment %s for parcel %s is %s", intent.id, parcel_id, intent.status)
            raise PaymentNotSucceededError(intent.status)

        expected = expected_amount_minor_units(parcel.cod_amount)
        if intent.amount != expected:
            logger.warning("Payment %s for parcel %s captured %s, expected %s",
                           intent.id, parcel_id, intent.amount, expected)
            raise AmountMismatchError(expected=expected, got=intent.amount)

        now = utcnow()
        await conditional_update(
            self.db,
            Parcel,
            [Parcel.id == parcel_id],
            {"payment_type": PaymentType.PAID, "paid_at": now, "transaction_id": intent.id, "updated_at": now},
        )
        record = PaymentRecord(
            parcel_id=parcel_id,
            user_email=acting_email,
            user_name=user_name or "",
            parcel_name=parcel.parcel_title,
            amount=intent.amount / 100,
            amount_in_cents=intent.amount,
            currency=intent.currency,
            provider=getattr(self.gateway, "provider", "stripe"),
            payment_intent_id=intent.id,
            payment_method=(intent.payment_method_types[0] if intent.payment_method_types else "card"),
            status=intent.status,
            created_at=now,
        )
        self.db.add(record)
        # The unique indexes on parcel_id and payment_intent_id reject a concurrent
        # duplicate and roll back the parcel update with it.
        await commit_unique(self.db, ALREADY_RECORDED_MESSAGE)

        logger.info("Payment %s recorded for parcel %s by %s", intent.id, parcel_id, acting_email)
        return record

    async def list_for(self, email: str):
        result = await self.db.execute(
            select(PaymentRecord)
            .where(PaymentRecord.user_email == email)
            .order_by(PaymentRecord.created_at.desc(), PaymentRecord.id.desc())
        )
        return list(result.scalars().all())
