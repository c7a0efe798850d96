"""
Parcel status transition table.

Admins move a parcel into ``assigned`` (assign) and back to ``created``
(unassign). Riders may only take the single next step from the table below.
"""

from typing import Optional

from delivery_backend.app.models.parcel_enums import ParcelStatus

RIDER_TRANSITIONS = {
    ParcelStatus.ASSIGNED: ParcelStatus.PICKED_UP,
    ParcelStatus.PICKED_UP: ParcelStatus.IN_TRANSIT,
    ParcelStatus.IN_TRANSIT: ParcelStatus.DELIVERED,
}

# Once a rider has physically handled the parcel it cannot be unassigned
UNASSIGNABLE_STATUSES = frozenset({ParcelStatus.CREATED, ParcelStatus.ASSIGNED})


def next_rider_status(current: ParcelStatus) -> Optional[ParcelStatus]:
    """The only status a rider may move a parcel to from ``current``."""
    return RIDER_TRANSITIONS.get(current)


def can_assign(current: ParcelStatus) -> bool:
    """Anything short of ``delivered`` may be (re)assigned, including parcels already in transit."""
    return current != ParcelStatus.DELIVERED


def can_unassign(current: ParcelStatus) -> bool:
    return current in UNASSIGNABLE_STATUSES
