"""
Account database model.

One row per external identity subject, created the first time that
subject's assertion is verified.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum
from delivery_backend.app.db.session import Base, utcnow
from delivery_backend.app.models.enums import AccountRole, AccountStatus, enum_values


class Account(Base):
    """
    Account model for customers, admins and riders.

    ``uid`` is the identity provider's subject and never changes. ``role`` is
    only written by the role-change and rider-approval paths, never by login.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    uid = Column(String(128), unique=True, index=True, nullable=False)
    # Nullable unique: several accounts may lack an email, none may share one
    email = Column(String(255), unique=True, index=True, nullable=True)

    # Profile
    name = Column(String(255), nullable=True)
    photo_url = Column(String(1024), nullable=True)
    provider = Column(String(50), nullable=True)

    role = Column(Enum(AccountRole, values_callable=enum_values), default=AccountRole.USER, nullable=False)
    status = Column(Enum(AccountStatus, values_callable=enum_values), default=AccountStatus.ACTIVE, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    last_login_at = Column(DateTime(timezone=True), default=utcnow, nullable=True)

    def __repr__(self):
        return f"<Account(id={self.id}, email='{self.email}', role='{self.role.value}')>"
