"""
Shared modules for the telehealth coordination services.

This package contains the contracts every service agrees on: event
schemas and topics, status vocabularies, and Cosmos DB container layout.
"""

from shared.events import (
    APPOINTMENT_BOOKED,
    PATIENT_REGISTERED,
    SESSION_STARTED,
    AppointmentBookedEvent,
    PatientRegisteredEvent,
    SessionStartedEvent,
)
from shared.statuses import AppointmentStatus, MappingStatus, SessionStatus

__all__ = [
    "APPOINTMENT_BOOKED",
    "PATIENT_REGISTERED",
    "SESSION_STARTED",
    "AppointmentBookedEvent",
    "PatientRegisteredEvent",
    "SessionStartedEvent",
    "AppointmentStatus",
    "MappingStatus",
    "SessionStatus",
]
