"""
Event Contracts.

Schemas of the events exchanged between the registration, scheduling
and session delivery services. Every event carries a common envelope
(event id, type, timestamp, source, schema version) and is keyed by the
id of the entity it describes, so the bus keeps per-entity order.
"""

import uuid
from datetime import datetime
from typing import Any, ClassVar, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from .statuses import AppointmentStatus

# =============================================================================
# TOPICS
# =============================================================================

PATIENT_REGISTERED = "patient.registered"
APPOINTMENT_BOOKED = "appointment.booked"
SESSION_STARTED = "session.started"


def dead_letter_topic(topic: str) -> str:
    return f"{topic}.dlq"


# =============================================================================
# EVENTS
# =============================================================================

class BaseEvent(BaseModel):
    """Envelope shared by all events."""

    model_config = ConfigDict(extra="ignore")

    topic: ClassVar[str] = ""

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: str
    timestamp: datetime
    source: str
    version: str = "1.0"

    def key(self) -> str:
        raise NotImplementedError

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class PatientRegisteredEvent(BaseEvent):
    topic: ClassVar[str] = PATIENT_REGISTERED

    event_type: str = "PATIENT_REGISTERED"
    patient_id: str
    contact: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    registered_at: datetime

    def key(self) -> str:
        return self.patient_id


class AppointmentBookedEvent(BaseEvent):
    topic: ClassVar[str] = APPOINTMENT_BOOKED

    event_type: str = "APPOINTMENT_BOOKED"
    appointment_id: str
    patient_id: str
    doctor_id: str
    scheduled_at: datetime
    appointment_type: str = "consultation"
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    reason: Optional[str] = None
    notes: Optional[str] = None
    booked_at: datetime

    def key(self) -> str:
        return self.appointment_id


class SessionStartedEvent(BaseEvent):
    topic: ClassVar[str] = SESSION_STARTED

    event_type: str = "SESSION_STARTED"
    session_id: str
    appointment_id: str
    patient_id: str
    doctor_id: str
    session_url: str
    start_time: datetime
    scheduled_time: Optional[datetime] = None

    def key(self) -> str:
        return self.session_id


class DeadLetter(BaseModel):
    """A message given up on by a consumer, kept for inspection and replay."""
    topic: str
    group: str
    key: str
    message_id: str
    attempts: int
    error: str
    payload: Dict[str, Any]
    dead_lettered_at: datetime


async def publish_event(bus, event: BaseEvent) -> str:
    """Publish an event on its topic under its entity key."""
    return await bus.publish(event.topic, event.key(), event.to_payload())
