"""
Registration HTTP endpoints.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from .service import PatientRegistrationService

router = APIRouter(prefix="/patients", tags=["registration"])


class RegisterPatientRequest(BaseModel):
    """Request model for patient registration."""
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: str = Field(min_length=3, pattern=r"^[^@\s]+@[^@\s]+$")
    phone_number: str = Field(min_length=5)
    date_of_birth: Optional[date] = None
    gender: Optional[str] = None
    address: Optional[str] = None


def get_registration_service(request: Request) -> PatientRegistrationService:
    return request.app.state.services.registration


@router.post("", status_code=201)
async def register_patient(
    body: RegisterPatientRequest,
    service: PatientRegistrationService = Depends(get_registration_service),
):
    patient = await service.register(**body.model_dump())
    return patient.to_dict()


@router.get("")
async def list_patients(service: PatientRegistrationService = Depends(get_registration_service)):
    return [patient.to_dict() for patient in await service.list_all()]


@router.get("/{patient_id}")
async def get_patient(patient_id: str, service: PatientRegistrationService = Depends(get_registration_service)):
    patient = await service.get(patient_id)
    return patient.to_dict()


@router.post("/{patient_id}/republish", status_code=202)
async def republish_registration(
    patient_id: str,
    service: PatientRegistrationService = Depends(get_registration_service),
):
    """Re-emit patient.registered for a patient whose original publish failed."""
    patient = await service.republish(patient_id)
    return {"patient_id": patient.id, "republished": True}
