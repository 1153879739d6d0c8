"""
Registration Service Models.
"""

import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Optional


def new_patient_id() -> str:
    return f"PAT-{uuid.uuid4().hex[:12].upper()}"


@dataclass(frozen=True)
class Patient:
    """A registered patient. Email and phone number each belong to one patient."""
    id: str
    first_name: str
    last_name: str
    email: str
    phone_number: str
    registered_at: datetime
    date_of_birth: Optional[date] = None
    gender: Optional[str] = None
    address: Optional[str] = None
    version: int = 0

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for persistence."""
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone_number": self.phone_number,
            "registered_at": self.registered_at.isoformat(),
            "date_of_birth": self.date_of_birth.isoformat() if self.date_of_birth else None,
            "gender": self.gender,
            "address": self.address,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Patient":
        dob = data.get("date_of_birth")
        return cls(
            id=data["id"],
            first_name=data["first_name"],
            last_name=data["last_name"],
            email=data["email"],
            phone_number=data["phone_number"],
            registered_at=datetime.fromisoformat(data["registered_at"]),
            date_of_birth=date.fromisoformat(dob) if dob else None,
            gender=data.get("gender"),
            address=data.get("address"),
            version=data.get("version", 0),
        )
