"""
Load-related enumerations.
"""

import enum


class LoadStatus(str, enum.Enum):
    """Load status enumeration."""
    DRAFT = "Draft"
    ACTIVE = "Active"  # Open on the marketplace
    PENDING = "Pending"
    ASSIGNED = "Assigned"  # Transporter and driver assigned, trip not started
    IN_TRANSIT = "In Transit"
    PAUSED = "Paused"
    REACHED = "Reached"  # At drop point, awaiting delivery OTP
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class PaymentStatus(str, enum.Enum):
    """Payment status enumeration."""
    PENDING = "Pending"
    ADVANCE_PAID = "Advance_Paid"
    FULLY_PAID = "Fully_Paid"


class BidStatus(str, enum.Enum):
    """Bid status enumeration."""
    PENDING = "Pending"
    ACCEPTED = "Accepted"
    REJECTED = "Rejected"
