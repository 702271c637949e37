"""
User roles enumeration.

Defines the role claims carried by RoadHive bearer tokens.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        SUPER_ADMIN: Platform operator, sees every tenant
        ADMIN: Tenant administrator
        SHIPPER: Posts loads and pays for them
        TRANSPORTER: Bids on loads and assigns drivers
        DRIVER: Executes the trip and reports location
        RECEIVER: Confirms delivery at the drop point
    """
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    SHIPPER = "SHIPPER"
    TRANSPORTER = "TRANSPORTER"
    DRIVER = "DRIVER"
    RECEIVER = "RECEIVER"
