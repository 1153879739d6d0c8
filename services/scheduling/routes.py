"""
Scheduling HTTP endpoints.

Static paths are declared before `/{appointment_id}` so they are not
captured by it.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from core.domain import ensure_utc
from shared.statuses import AppointmentStatus

from .booking import AppointmentBookingCoordinator
from .eligibility import EligibilityTracker
from .models import BookingRejected

router = APIRouter(prefix="/appointments", tags=["scheduling"])


class BookAppointmentRequest(BaseModel):
    """Request model for booking an appointment."""
    patient_id: str = Field(min_length=1)
    doctor_id: str = Field(min_length=1)
    scheduled_at: datetime
    appointment_type: str = "consultation"
    reason: Optional[str] = None
    notes: Optional[str] = None


class AppointmentStatusRequest(BaseModel):
    status: AppointmentStatus


def get_booking(request: Request) -> AppointmentBookingCoordinator:
    return request.app.state.services.booking


def get_eligibility(request: Request) -> EligibilityTracker:
    return request.app.state.services.eligibility


@router.post("", status_code=201)
async def book_appointment(
    body: BookAppointmentRequest,
    booking: AppointmentBookingCoordinator = Depends(get_booking),
):
    if ensure_utc(body.scheduled_at) <= booking.clock.now():
        raise HTTPException(status_code=422, detail="scheduled_at must be in the future")

    result = await booking.book(
        patient_id=body.patient_id,
        doctor_id=body.doctor_id,
        scheduled_at=body.scheduled_at,
        reason=body.reason,
        notes=body.notes,
        appointment_type=body.appointment_type,
    )
    if isinstance(result, BookingRejected):
        raise result.to_error()
    return result.to_dict()


@router.get("/eligible-patients")
async def list_eligible_patients(eligibility: EligibilityTracker = Depends(get_eligibility)):
    patient_ids = await eligibility.list_eligible()
    return {"patient_ids": sorted(patient_ids), "count": len(patient_ids)}


@router.get("/patient/{patient_id}/eligible")
async def check_eligibility(patient_id: str, eligibility: EligibilityTracker = Depends(get_eligibility)):
    decision = await eligibility.explain(patient_id)
    return {
        "patient_id": patient_id,
        "eligible": decision.is_approved,
        "reason": decision.reason,
        **decision.metadata,
    }


@router.get("/patient/{patient_id}")
async def list_patient_appointments(patient_id: str, booking: AppointmentBookingCoordinator = Depends(get_booking)):
    appointments = await booking.list_for_patient(patient_id)
    return [appointment.to_dict() for appointment in appointments]


@router.get("/{appointment_id}")
async def get_appointment(appointment_id: str, booking: AppointmentBookingCoordinator = Depends(get_booking)):
    appointment = await booking.get(appointment_id)
    return appointment.to_dict()


@router.put("/{appointment_id}/status")
async def update_appointment_status(
    appointment_id: str,
    body: AppointmentStatusRequest,
    booking: AppointmentBookingCoordinator = Depends(get_booking),
):
    appointment = await booking.set_status(appointment_id, body.status)
    return appointment.to_dict()


@router.post("/{appointment_id}/republish", status_code=202)
async def republish_booking(appointment_id: str, booking: AppointmentBookingCoordinator = Depends(get_booking)):
    """Re-emit appointment.booked for an appointment whose original publish failed."""
    appointment = await booking.republish(appointment_id)
    return {"appointment_id": appointment.id, "republished": True}
