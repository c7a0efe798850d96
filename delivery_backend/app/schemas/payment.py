"""
Payment API schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List


class CreateIntentRequest(BaseModel):
    parcel_id: int = Field(..., ge=1)


class CreateIntentResponse(BaseModel):
    client_secret: Optional[str]
    intent_id: str
    amount_in_cents: int
    currency: str


class ConfirmPaymentRequest(BaseModel):
    """Schema for confirming a client-side payment."""
    parcel_id: int = Field(..., ge=1)
    payment_intent_id: str = Field(..., min_length=1, max_length=255)
    user_name: Optional[str] = Field(None, max_length=255)


class PaymentRecordResponse(BaseModel):
    """Schema for a payment ledger entry."""
    id: int
    parcel_id: int
    user_email: str
    user_name: Optional[str]
    parcel_name: Optional[str]
    amount: float
    amount_in_cents: int
    currency: str
    provider: str
    payment_intent_id: str
    payment_method: Optional[str]
    status: str
    created_at: datetime

    class Config:
        from_attributes = True


class PaymentListResponse(BaseModel):
    payments: List[PaymentRecordResponse]
