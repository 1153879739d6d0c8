"""
Status vocabularies shared across the three services.

Scheduling's appointment status, delivery's mapping status and the
session status describe the same underlying workflow but evolve
independently. Conversions between them live here and are applied
only at service boundaries.
"""

from enum import Enum
from typing import Union


class AppointmentStatus(str, Enum):
    """Lifecycle of an appointment as the scheduling service records it."""
    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


class MappingStatus(str, Enum):
    """Delivery-side projection of an appointment's cross-service lifecycle."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    SESSION_READY = "SESSION_READY"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class SessionStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    STARTED = "STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


TERMINAL_SESSION_STATUSES = frozenset({
    SessionStatus.COMPLETED,
    SessionStatus.CANCELLED,
    SessionStatus.NO_SHOW,
})


# =============================================================================
# BOUNDARY CONVERSIONS
# =============================================================================

def mapping_status_for_session_outcome(status: SessionStatus) -> MappingStatus:
    """Mapping status that reflects a terminal session outcome."""
    status = SessionStatus(status)
    if status not in TERMINAL_SESSION_STATUSES:
        raise ValueError(f"Session status {status.value} is not a terminal outcome")
    if status == SessionStatus.COMPLETED:
        return MappingStatus.COMPLETED
    return MappingStatus.CANCELLED


def mapping_status_for_booking(status: Union[AppointmentStatus, str]) -> MappingStatus:
    """
    Mapping status reached by consuming a booking.

    A freshly booked appointment is auto-confirmed on the delivery side.
    """
    status = AppointmentStatus(status)
    if status in (AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW):
        return MappingStatus.CANCELLED
    return MappingStatus.CONFIRMED
