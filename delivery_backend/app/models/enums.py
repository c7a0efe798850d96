"""
Account role and status enumerations.
"""

import enum


class AccountRole(str, enum.Enum):
    """
    Account role enumeration.

    Roles:
        USER: Customer sending parcels (default for new accounts)
        ADMIN: Operates riders, assignments and account roles
        RIDER: Granted when a rider application is approved
    """
    USER = "user"
    ADMIN = "admin"
    RIDER = "rider"


class AccountStatus(str, enum.Enum):
    """Account status enumeration."""
    ACTIVE = "active"
    SUSPENDED = "suspended"


def enum_values(enum_cls):
    """Persist enum values (``picked_up``) rather than member names (``PICKED_UP``)."""
    return [member.value for member in enum_cls]
