"""
Rider application status enumeration.
"""

import enum


class RiderStatus(str, enum.Enum):
    """
    Rider application status enumeration.

    Status flow:
        PENDING → APPROVED → DEACTIVATED
        PENDING → REJECTED
    """
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    DEACTIVATED = "deactivated"
