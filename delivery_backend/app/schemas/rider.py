"""
Rider application API schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
from delivery_backend.app.models.rider_enums import RiderStatus


class RiderApply(BaseModel):
    """Schema for submitting a rider application."""
    name: str = Field(..., min_length=1, max_length=255)
    phone: str = Field(..., min_length=3, max_length=32, description="Unique across all applications")
    nid: str = Field(..., min_length=3, max_length=64, description="National ID, unique across all applications")
    email: Optional[str] = Field(None, max_length=255, description="Contact email, defaults to the applicant's")
    age: Optional[int] = Field(None, ge=16, le=100)
    region: Optional[str] = Field(None, max_length=100)
    district: Optional[str] = Field(None, max_length=100)
    bike_brand: Optional[str] = Field(None, max_length=100)
    bike_registration: Optional[str] = Field(None, max_length=100)


class RiderResponse(BaseModel):
    """Schema for rider application response."""
    id: int
    name: str
    phone: Optional[str]
    nid: Optional[str]
    email: Optional[str]
    age: Optional[int]
    region: Optional[str]
    district: Optional[str]
    bike_brand: Optional[str]
    bike_registration: Optional[str]
    created_by_email: str
    status: RiderStatus
    created_at: datetime
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    deactivated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RiderListResponse(BaseModel):
    """Schema for paginated rider list."""
    items: List[RiderResponse]
    total: int
    page: int
    page_size: int
    page_count: int


class ApprovalResponse(BaseModel):
    """Outcome of the two writes an approval performs."""
    rider_modified: bool
    account_matched: bool
    account_modified: bool


class RoleSyncResponse(BaseModel):
    account_matched: bool
    account_modified: bool
