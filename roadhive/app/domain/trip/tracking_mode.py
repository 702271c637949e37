"""
Position source selection for a trip session.
"""

import enum


class TrackingMode(str, enum.Enum):
    """Exactly one mode is active per trip session."""
    GPS = "GPS"
    SIMULATION = "SIMULATION"
    OFF = "OFF"
