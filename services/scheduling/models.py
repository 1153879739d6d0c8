"""
Scheduling Service Models.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from core.errors import ErrorKind, IneligibleError
from shared.statuses import AppointmentStatus


def new_appointment_id() -> str:
    return f"APPT-{uuid.uuid4().hex[:12].upper()}"


def _parse_optional(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass(frozen=True)
class EligibilityRecord:
    """
    Booking window anchor for one patient.

    Written once, from the first `patient.registered` seen for the
    patient; never changed afterwards.
    """
    id: str
    patient_id: str
    contact: str
    registered_at: datetime
    version: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "contact": self.contact,
            "registered_at": self.registered_at.isoformat(),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EligibilityRecord":
        return cls(
            id=data["id"],
            patient_id=data["patient_id"],
            contact=data["contact"],
            registered_at=datetime.fromisoformat(data["registered_at"]),
            version=data.get("version", 0),
        )


@dataclass(frozen=True)
class Appointment:
    """An appointment booked inside the patient's eligibility window."""
    id: str
    patient_id: str
    doctor_id: str
    scheduled_at: datetime
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    appointment_type: str = "consultation"
    reason: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for persistence."""
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "doctor_id": self.doctor_id,
            "scheduled_at": self.scheduled_at.isoformat(),
            "status": self.status.value,
            "appointment_type": self.appointment_type,
            "reason": self.reason,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Appointment":
        return cls(
            id=data["id"],
            patient_id=data["patient_id"],
            doctor_id=data["doctor_id"],
            scheduled_at=datetime.fromisoformat(data["scheduled_at"]),
            status=AppointmentStatus(data["status"]),
            appointment_type=data.get("appointment_type") or "consultation",
            reason=data.get("reason"),
            notes=data.get("notes"),
            created_at=_parse_optional(data.get("created_at")),
            updated_at=_parse_optional(data.get("updated_at")),
            version=data.get("version", 0),
        )


@dataclass(frozen=True)
class BookingRejected:
    """
    A booking refused because the patient is not eligible.

    This is an expected answer, not a failure: nothing was persisted and
    no event was published.
    """
    patient_id: str
    reason: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    kind: ErrorKind = ErrorKind.INELIGIBLE

    def to_error(self) -> IneligibleError:
        return IneligibleError(self.reason, {"patient_id": self.patient_id, **self.metadata})
