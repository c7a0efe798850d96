"""
Parcel status and payment type enumerations.
"""

import enum


class ParcelStatus(str, enum.Enum):
    """
    Parcel status enumeration.

    Status flow:
        CREATED → ASSIGNED → PICKED_UP → IN_TRANSIT → DELIVERED
        ASSIGNED → CREATED when an admin unassigns the rider
    """
    CREATED = "created"
    ASSIGNED = "assigned"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"


class PaymentType(str, enum.Enum):
    """Cash on delivery until the payment reconciler marks the parcel paid."""
    COD = "cod"
    PAID = "paid"
