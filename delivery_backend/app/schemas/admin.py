"""
Admin API Schema Definitions.
"""

from pydantic import BaseModel
from datetime import datetime
from typing import Optional, List, Dict, Any


class AuditLogResponse(BaseModel):
    """Schema for audit log entry."""
    id: int
    actor_email: Optional[str]
    action: str
    target_type: Optional[str]
    target_id: Optional[int]
    meta_data: Optional[Dict[str, Any]]
    timestamp: datetime

    class Config:
        from_attributes = True


class AuditTrailResponse(BaseModel):
    """Schema for audit trail response."""
    logs: List[AuditLogResponse]
    total: int
