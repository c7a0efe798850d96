"""
Parcel Pydantic schemas.

Defines request and response models for parcel creation, listing,
assignment, rider status updates and public tracking.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Dict, Any
from delivery_backend.app.models.parcel_enums import ParcelStatus, PaymentType


class StatusHistoryEntry(BaseModel):
    """One status history entry as supplied by a client at creation."""
    status: str
    time: Optional[datetime] = None
    by: Optional[str] = None
    by_role: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None


class ParcelCreate(BaseModel):
    """Schema for creating a new parcel."""
    parcel_title: str = Field(..., min_length=1, max_length=255)
    parcel_type: str = Field(..., min_length=1, max_length=50, description="document, non-document...")
    weight_kg: Optional[float] = Field(None, gt=0, description="Weight in kilograms")
    payment_type: Optional[str] = Field(None, description="cod or paid, case-insensitive")
    delivery_cost: float = Field(0.0, ge=0)
    cod_amount: float = Field(0.0, ge=0, description="Amount to collect, in major units")

    sender_name: Optional[str] = Field(None, max_length=255)
    sender_phone: Optional[str] = Field(None, max_length=32)
    sender_region: Optional[str] = Field(None, max_length=100)
    sender_center: Optional[str] = Field(None, max_length=100)
    receiver_name: Optional[str] = Field(None, max_length=255)
    receiver_phone: Optional[str] = Field(None, max_length=32)
    receiver_region: Optional[str] = Field(None, max_length=100)
    receiver_center: Optional[str] = Field(None, max_length=100)
    receiver_address: Optional[str] = Field(None, max_length=500)

    tracking_id: Optional[str] = Field(None, min_length=4, max_length=64)
    created_by_email: Optional[str] = Field(None, max_length=255)
    status_history: Optional[List[StatusHistoryEntry]] = None


class StatusEventResponse(BaseModel):
    status: ParcelStatus
    time: datetime
    by: Optional[str]
    by_role: Optional[str]
    extra: Optional[Dict[str, Any]] = None

    class Config:
        from_attributes = True


class ParcelResponse(BaseModel):
    """Schema for parcel response."""
    id: int
    tracking_id: str
    parcel_title: str
    parcel_type: str
    weight_kg: Optional[float]
    payment_type: PaymentType
    delivery_cost: float
    cod_amount: float

    sender_name: Optional[str]
    sender_phone: Optional[str]
    sender_region: Optional[str]
    sender_center: Optional[str]
    receiver_name: Optional[str]
    receiver_phone: Optional[str]
    receiver_region: Optional[str]
    receiver_center: Optional[str]
    receiver_address: Optional[str]

    status: ParcelStatus
    assigned_rider_id: Optional[int]
    assigned_rider: Optional[Dict[str, Any]]
    assigned_rider_at: Optional[datetime]
    unassigned_at: Optional[datetime]
    delivered_at: Optional[datetime]
    paid_at: Optional[datetime]
    transaction_id: Optional[str]

    created_by_email: str
    created_at: datetime
    updated_at: datetime
    status_history: List[StatusEventResponse] = []

    class Config:
        from_attributes = True


class ParcelListResponse(BaseModel):
    """Schema for paginated parcel list."""
    parcels: List[ParcelResponse]
    total: int
    page: int
    page_size: int
    page_count: int


class AssignRequest(BaseModel):
    rider_id: int = Field(..., ge=1)


class AssignResponse(BaseModel):
    parcel_id: int
    status: ParcelStatus
    assigned_rider: Dict[str, Any]


class StatusUpdateRequest(BaseModel):
    """Requested next status; validated against the transition table, not here."""
    status: str = Field(..., min_length=1, max_length=32)


class StatusUpdateResponse(BaseModel):
    modified: bool
    parcel: ParcelResponse


class DeleteResponse(BaseModel):
    deleted: bool
    id: int


class PublicRider(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None


class PublicStatusEvent(BaseModel):
    status: ParcelStatus
    time: datetime
    by_role: Optional[str] = None


class PublicTrackingResponse(BaseModel):
    """Public tracking view: no internal ids, no sender/receiver contact details."""
    tracking_id: str
    parcel_title: str
    parcel_type: str
    status: ParcelStatus
    payment_type: PaymentType
    sender_region: Optional[str]
    receiver_region: Optional[str]
    receiver_center: Optional[str]
    assigned_rider: Optional[PublicRider]
    created_at: datetime
    delivered_at: Optional[datetime]
    status_history: List[PublicStatusEvent]

    @classmethod
    def from_parcel(cls, parcel) -> "PublicTrackingResponse":
        rider = parcel.assigned_rider
        return cls(
            tracking_id=parcel.tracking_id,
            parcel_title=parcel.parcel_title,
            parcel_type=parcel.parcel_type,
            status=parcel.status,
            payment_type=parcel.payment_type,
            sender_region=parcel.sender_region,
            receiver_region=parcel.receiver_region,
            receiver_center=parcel.receiver_center,
            assigned_rider=PublicRider(name=rider.get("name"), phone=rider.get("phone")) if rider else None,
            created_at=parcel.created_at,
            delivered_at=parcel.delivered_at,
            status_history=[
                PublicStatusEvent(status=event.status, time=event.time, by_role=event.by_role)
                for event in parcel.status_history
            ],
        )
