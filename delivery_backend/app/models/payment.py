"""
Payment record database model.

Append-only ledger of reconciled payments, one row per parcel.
"""

from sqlalchemy import Column, Integer, Float, ForeignKey, DateTime, String
from delivery_backend.app.db.session import Base, utcnow


class PaymentRecord(Base):
    """
    Payment record model.

    The unique index on ``parcel_id`` is what makes payment confirmation
    idempotent: a second insert for the same parcel is rejected by the store.
    ``payment_intent_id`` is unique too, so one captured payment settles one parcel.
    NO updates or deletions allowed.
    """
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Linkage
    parcel_id = Column(Integer, ForeignKey("parcels.id"), unique=True, nullable=False, index=True)
    user_email = Column(String(255), nullable=False, index=True)
    user_name = Column(String(255), nullable=True)
    parcel_name = Column(String(255), nullable=True)

    # Financials
    amount = Column(Float, nullable=False)
    amount_in_cents = Column(Integer, nullable=False)
    currency = Column(String(10), nullable=False)

    # Gateway reference
    provider = Column(String(50), nullable=False)
    payment_intent_id = Column(String(255), unique=True, nullable=False, index=True)
    payment_method = Column(String(50), nullable=True)
    status = Column(String(50), nullable=False)

    # Timestamps (Immutable - no updated_at)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<PaymentRecord(id={self.id}, parcel_id={self.parcel_id}, amount={self.amount})>"
