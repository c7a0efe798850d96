"""
Rider application database model.

An application is linked to the applicant's account by email and moves
through pending → approved/rejected → deactivated.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum
from delivery_backend.app.db.session import Base, utcnow
from delivery_backend.app.models.enums import enum_values
from delivery_backend.app.models.rider_enums import RiderStatus


class RiderApplication(Base):
    """
    Rider application model.

    Phone and national id are unique across every application regardless of
    status, so a rejected applicant cannot re-apply with the same documents.
    """
    __tablename__ = "riders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Identity of the applicant
    name = Column(String(255), nullable=False)
    phone = Column(String(32), unique=True, index=True, nullable=True)
    nid = Column(String(64), unique=True, index=True, nullable=True)
    email = Column(String(255), nullable=True)
    age = Column(Integer, nullable=True)

    # Operating area and vehicle
    region = Column(String(100), nullable=True)
    district = Column(String(100), nullable=True)
    bike_brand = Column(String(100), nullable=True)
    bike_registration = Column(String(100), nullable=True)

    # Link to the applicant's account
    created_by_email = Column(String(255), index=True, nullable=False)

    status = Column(Enum(RiderStatus, values_callable=enum_values), default=RiderStatus.PENDING, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    deactivated_at = Column(DateTime(timezone=True), nullable=True)

    def snapshot(self) -> dict:
        """Identity fields frozen onto a parcel at assignment time."""
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email or self.created_by_email,
        }

    def __repr__(self):
        return f"<RiderApplication(id={self.id}, phone='{self.phone}', status='{self.status.value}')>"
