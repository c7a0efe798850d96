"""
Parcel database models.

A parcel is the aggregate root of the delivery lifecycle. Its status
history lives in a child table that is only ever appended to.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Enum, JSON
from sqlalchemy.orm import relationship
from delivery_backend.app.db.session import Base, utcnow
from delivery_backend.app.models.enums import enum_values
from delivery_backend.app.models.parcel_enums import ParcelStatus, PaymentType


class Parcel(Base):
    """
    Parcel model.

    ``assigned_rider`` is a snapshot of the rider's identity taken when the
    rider was assigned; later edits to the rider application do not reach it.
    """
    __tablename__ = "parcels"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Public identifier used by the tracking page
    tracking_id = Column(String(64), unique=True, nullable=False, index=True)

    # Contents and pricing
    parcel_title = Column(String(255), nullable=False)
    parcel_type = Column(String(50), nullable=False)
    weight_kg = Column(Float, nullable=True)
    payment_type = Column(Enum(PaymentType, values_callable=enum_values), default=PaymentType.COD, nullable=False, index=True)
    delivery_cost = Column(Float, nullable=False, default=0.0)
    cod_amount = Column(Float, nullable=False, default=0.0)

    # Route
    sender_name = Column(String(255), nullable=True)
    sender_phone = Column(String(32), nullable=True)
    sender_region = Column(String(100), nullable=True)
    sender_center = Column(String(100), nullable=True)
    receiver_name = Column(String(255), nullable=True)
    receiver_phone = Column(String(32), nullable=True)
    receiver_region = Column(String(100), nullable=True)
    receiver_center = Column(String(100), nullable=True)
    receiver_address = Column(String(500), nullable=True)

    # Lifecycle
    status = Column(Enum(ParcelStatus, values_callable=enum_values), default=ParcelStatus.CREATED, nullable=False, index=True)
    assigned_rider_id = Column(Integer, ForeignKey("riders.id"), nullable=True, index=True)
    assigned_rider = Column(JSON, nullable=True)
    assigned_rider_at = Column(DateTime(timezone=True), nullable=True)
    unassigned_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)

    # Payment reconciliation
    paid_at = Column(DateTime(timezone=True), nullable=True)
    transaction_id = Column(String(255), nullable=True)

    created_by_email = Column(String(255), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    status_history = relationship(
        "ParcelStatusEvent",
        order_by="ParcelStatusEvent.id",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )

    def __repr__(self):
        return f"<Parcel(id={self.id}, tracking_id='{self.tracking_id}', status='{self.status.value}')>"


class ParcelStatusEvent(Base):
    """
    One entry of a parcel's status history.

    Rows are inserted in the same transaction as the status change they
    record and are never updated afterwards.
    """
    __tablename__ = "parcel_status_history"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    parcel_id = Column(Integer, ForeignKey("parcels.id", ondelete="CASCADE"), nullable=False, index=True)

    status = Column(Enum(ParcelStatus, values_callable=enum_values), nullable=False)
    time = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    by = Column(String(255), nullable=True)
    by_role = Column(String(20), nullable=True)
    extra = Column(JSON, nullable=True)

    def __repr__(self):
        return f"<ParcelStatusEvent(parcel_id={self.parcel_id}, status='{self.status.value}', by='{self.by}')>"
