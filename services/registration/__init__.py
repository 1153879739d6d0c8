"""
Registration Service.

Registers patients and publishes `patient.registered`.
"""

from .models import Patient
from .service import PatientRegistrationService

__all__ = [
    "Patient",
    "PatientRegistrationService",
]
