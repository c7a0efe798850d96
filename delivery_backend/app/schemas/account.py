"""
Account API schemas.

Login upsert, self view, search results and role changes.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
from delivery_backend.app.models.enums import AccountRole, AccountStatus


class UserUpsert(BaseModel):
    """Profile fields sent on login. ``uid`` and ``email`` come from the identity."""
    name: Optional[str] = Field(None, max_length=255)
    photo_url: Optional[str] = Field(None, max_length=1024)
    provider: Optional[str] = Field(None, max_length=50)


class UpsertResponse(BaseModel):
    is_new_user: bool
    id: int


class AccountResponse(BaseModel):
    """Schema for account response."""
    id: int
    uid: str
    email: Optional[str]
    name: Optional[str]
    photo_url: Optional[str]
    provider: Optional[str]
    role: AccountRole
    status: AccountStatus
    created_at: datetime
    last_login_at: Optional[datetime]

    class Config:
        from_attributes = True


class AccountSearchResponse(BaseModel):
    users: List[AccountResponse]


class RoleResponse(BaseModel):
    role: AccountRole


class RoleChangeRequest(BaseModel):
    """Schema for changing an account's role."""
    # Plain string so an unknown role is reported as ERR_ARG_001, not ERR_VALIDATION
    role: str = Field(..., min_length=1, max_length=20, description="user, admin or rider")


class RoleChangeResponse(BaseModel):
    modified: bool
    id: int
    role: AccountRole


class LogoutResponse(BaseModel):
    message: str
