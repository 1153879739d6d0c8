"""
Scheduling Service.

Tracks booking eligibility windows from `patient.registered` and books
appointments, publishing `appointment.booked`.
"""

from .booking import AppointmentBookingCoordinator
from .eligibility import EligibilityTracker
from .models import Appointment, BookingRejected, EligibilityRecord

__all__ = [
    "AppointmentBookingCoordinator",
    "EligibilityTracker",
    "Appointment",
    "BookingRejected",
    "EligibilityRecord",
]
