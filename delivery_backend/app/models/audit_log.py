"""
Audit Log Database Model.

Tracks admin actions on accounts, riders and parcel assignments.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from delivery_backend.app.db.session import Base, utcnow


class AuditLog(Base):
    """
    Audit log model for tracking admin actions.

    Events logged:
    - ROLE_CHANGED
    - RIDER_APPROVED / RIDER_REJECTED / RIDER_DEACTIVATED / RIDER_ROLE_SYNCED
    - RIDER_ASSIGNED / RIDER_UNASSIGNED
    - PARCEL_DELETED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions)
    actor_email = Column(String(255), index=True, nullable=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # What it was performed on
    target_type = Column(String(50), nullable=True, index=True)
    target_id = Column(Integer, nullable=True, index=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    timestamp = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_email}, target={self.target_type}:{self.target_id})>"
