"""
Payment API endpoints.

The client pays through the gateway with the intent's client secret, then
asks the backend to confirm; confirmation re-reads the intent from the
gateway instead of trusting the client.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from delivery_backend.app.db.session import get_db
from delivery_backend.app.models.account import Account
from delivery_backend.app.schemas.payment import (
    ConfirmPaymentRequest, CreateIntentRequest, CreateIntentResponse,
    PaymentListResponse, PaymentRecordResponse,
)
from delivery_backend.app.core.dependencies import get_current_account
from delivery_backend.app.core.exceptions import InsufficientPermissionsError
from delivery_backend.app.core.guards import OwnershipGuard, is_admin
from delivery_backend.app.domain.payments.gateway import get_payment_gateway
from delivery_backend.app.domain.payments.reconciler import PaymentReconciler
from delivery_backend.app.domain.parcels.lifecycle import ParcelLifecycleEngine

router = APIRouter(prefix="/payments", tags=["Payments"])
ownership_guard = OwnershipGuard()


def get_reconciler(
    db: AsyncSession = Depends(get_db),
    gateway=Depends(get_payment_gateway),
) -> PaymentReconciler:
    return PaymentReconciler(db, gateway)


@router.post("/create-intent", response_model=CreateIntentResponse, status_code=status.HTTP_201_CREATED)
async def create_intent(
    request: CreateIntentRequest,
    account: Account = Depends(get_current_account),
    reconciler: PaymentReconciler = Depends(get_reconciler),
    db: AsyncSession = Depends(get_db),
):
    parcel = await ParcelLifecycleEngine(db).require(request.parcel_id)
    ownership_guard.enforce(parcel.created_by_email, account, "parcel")

    intent = await reconciler.create_intent(request.parcel_id)
    return CreateIntentResponse(
        client_secret=intent.client_secret,
        intent_id=intent.id,
        amount_in_cents=intent.amount,
        currency=intent.currency,
    )


@router.post("/confirm", response_model=PaymentRecordResponse, status_code=status.HTTP_201_CREATED)
async def confirm_payment(
    request: ConfirmPaymentRequest,
    account: Account = Depends(get_current_account),
    reconciler: PaymentReconciler = Depends(get_reconciler),
    db: AsyncSession = Depends(get_db),
):
    """
    Verify a gateway payment and mark the parcel paid.

    Only the parcel's creator or an admin may confirm. A second confirmation
    for the same parcel returns 409.
    """
    parcel = await ParcelLifecycleEngine(db).require(request.parcel_id)
    ownership_guard.enforce(parcel.created_by_email, account, "parcel")

    record = await reconciler.confirm_payment(
        request.parcel_id,
        request.payment_intent_id,
        account.email,
        request.user_name or account.name,
    )
    return PaymentRecordResponse.model_validate(record)


@router.get("", response_model=PaymentListResponse)
async def list_payments(
    email: Optional[str] = Query(None, description="Payer email (admins only)"),
    account: Account = Depends(get_current_account),
    reconciler: PaymentReconciler = Depends(get_reconciler),
):
    """The caller's payment history, newest first; admins may read another payer's."""
    payer = account.email
    if email and email.lower() != account.email:
        if not is_admin(account):
            raise InsufficientPermissionsError("Only admins may read another account's payments")
        payer = email.lower()

    records = await reconciler.list_for(payer)
    return PaymentListResponse(payments=[PaymentRecordResponse.model_validate(r) for r in records])
