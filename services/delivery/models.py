"""
Session Delivery Service Models.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from shared.statuses import MappingStatus, SessionStatus


def new_id() -> str:
    return str(uuid.uuid4())


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class FileCategory(str, Enum):
    MEDICAL_RECORD = "MEDICAL_RECORD"
    PRESCRIPTION = "PRESCRIPTION"
    LAB_REPORT = "LAB_REPORT"
    IMAGE = "IMAGE"
    DOCUMENT = "DOCUMENT"
    OTHER = "OTHER"


class UploaderRole(str, Enum):
    PATIENT = "PATIENT"
    DOCTOR = "DOCTOR"


@dataclass(frozen=True)
class AppointmentMapping:
    """
    Delivery-side projection of one appointment.

    At most one mapping exists per appointment_id. Its status only moves
    forward through the mapping transition table.
    """
    id: str
    appointment_id: str
    patient_id: str
    doctor_id: str
    appointment_time: datetime
    status: MappingStatus = MappingStatus.PENDING
    appointment_type: str = "consultation"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "appointment_id": self.appointment_id,
            "patient_id": self.patient_id,
            "doctor_id": self.doctor_id,
            "appointment_time": self.appointment_time.isoformat(),
            "status": self.status.value,
            "appointment_type": self.appointment_type,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppointmentMapping":
        return cls(
            id=data["id"],
            appointment_id=data["appointment_id"],
            patient_id=data["patient_id"],
            doctor_id=data["doctor_id"],
            appointment_time=datetime.fromisoformat(data["appointment_time"]),
            status=MappingStatus(data["status"]),
            appointment_type=data.get("appointment_type") or "consultation",
            created_at=_parse(data.get("created_at")),
            updated_at=_parse(data.get("updated_at")),
            version=data.get("version", 0),
        )


@dataclass(frozen=True)
class Session:
    """
    A virtual consultation for one appointment.

    session_url is an opaque locator handed to both participants. The
    file fields summarize the session's attachments and are recomputed
    whenever an attachment is added or removed.
    """
    id: str
    appointment_id: str
    patient_id: str
    doctor_id: str
    scheduled_time: datetime
    session_url: str
    status: SessionStatus = SessionStatus.SCHEDULED
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    file_count: int = 0
    has_patient_files: bool = False
    has_doctor_files: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "appointment_id": self.appointment_id,
            "patient_id": self.patient_id,
            "doctor_id": self.doctor_id,
            "scheduled_time": self.scheduled_time.isoformat(),
            "session_url": self.session_url,
            "status": self.status.value,
            "start_time": _iso(self.start_time),
            "end_time": _iso(self.end_time),
            "file_count": self.file_count,
            "has_patient_files": self.has_patient_files,
            "has_doctor_files": self.has_doctor_files,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        return cls(
            id=data["id"],
            appointment_id=data["appointment_id"],
            patient_id=data["patient_id"],
            doctor_id=data["doctor_id"],
            scheduled_time=datetime.fromisoformat(data["scheduled_time"]),
            session_url=data["session_url"],
            status=SessionStatus(data["status"]),
            start_time=_parse(data.get("start_time")),
            end_time=_parse(data.get("end_time")),
            file_count=data.get("file_count", 0),
            has_patient_files=data.get("has_patient_files", False),
            has_doctor_files=data.get("has_doctor_files", False),
            created_at=_parse(data.get("created_at")),
            updated_at=_parse(data.get("updated_at")),
            version=data.get("version", 0),
        )


@dataclass(frozen=True)
class SessionFile:
    """Metadata of one attachment. The bytes live in external storage."""
    id: str
    session_id: str
    file_name: str
    original_file_name: str
    file_type: str
    file_size: int
    category: FileCategory
    uploaded_by: UploaderRole
    uploaded_by_id: str
    content_type: Optional[str] = None
    description: Optional[str] = None
    uploaded_at: Optional[datetime] = None
    version: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "file_name": self.file_name,
            "original_file_name": self.original_file_name,
            "file_type": self.file_type,
            "file_size": self.file_size,
            "category": self.category.value,
            "uploaded_by": self.uploaded_by.value,
            "uploaded_by_id": self.uploaded_by_id,
            "content_type": self.content_type,
            "description": self.description,
            "uploaded_at": _iso(self.uploaded_at),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionFile":
        return cls(
            id=data["id"],
            session_id=data["session_id"],
            file_name=data["file_name"],
            original_file_name=data["original_file_name"],
            file_type=data["file_type"],
            file_size=data["file_size"],
            category=FileCategory(data["category"]),
            uploaded_by=UploaderRole(data["uploaded_by"]),
            uploaded_by_id=data["uploaded_by_id"],
            content_type=data.get("content_type"),
            description=data.get("description"),
            uploaded_at=_parse(data.get("uploaded_at")),
            version=data.get("version", 0),
        )
