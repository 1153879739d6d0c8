"""
Session delivery HTTP endpoints.

Two routers: appointment mappings and sessions (with their attachments).
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from shared.statuses import MappingStatus

from .files import SessionFileService
from .mapping import AppointmentMappingStateMachine
from .models import FileCategory, UploaderRole
from .sessions import SessionLifecycleManager

mapping_router = APIRouter(prefix="/api/v1/appointments", tags=["delivery"])
session_router = APIRouter(prefix="/api/v1/sessions", tags=["delivery"])


class MappingStatusRequest(BaseModel):
    status: MappingStatus


class CreateSessionRequest(BaseModel):
    """Request model for creating a session."""
    appointment_id: str = Field(min_length=1)
    patient_id: str = Field(min_length=1)
    doctor_id: str = Field(min_length=1)
    scheduled_time: datetime


class AddFileRequest(BaseModel):
    """Metadata of an attachment already written to file storage."""
    original_file_name: str = Field(min_length=1)
    file_size: int = Field(ge=0)
    category: FileCategory = FileCategory.OTHER
    uploaded_by: UploaderRole
    uploaded_by_id: str = Field(min_length=1)
    content_type: Optional[str] = None
    description: Optional[str] = None


def get_mappings(request: Request) -> AppointmentMappingStateMachine:
    return request.app.state.services.mappings


def get_sessions(request: Request) -> SessionLifecycleManager:
    return request.app.state.services.sessions


def get_files(request: Request) -> SessionFileService:
    return request.app.state.services.files


# =============================================================================
# APPOINTMENT MAPPINGS
# =============================================================================

@mapping_router.get("")
async def list_mappings(mappings: AppointmentMappingStateMachine = Depends(get_mappings)):
    return [mapping.to_dict() for mapping in await mappings.list_all()]


@mapping_router.get("/stats")
async def mapping_stats(mappings: AppointmentMappingStateMachine = Depends(get_mappings)):
    return await mappings.count_by_status()


@mapping_router.get("/patient/{patient_id}")
async def list_patient_mappings(patient_id: str, mappings: AppointmentMappingStateMachine = Depends(get_mappings)):
    return [mapping.to_dict() for mapping in await mappings.list_for_patient(patient_id)]


@mapping_router.get("/doctor/{doctor_id}")
async def list_doctor_mappings(doctor_id: str, mappings: AppointmentMappingStateMachine = Depends(get_mappings)):
    return [mapping.to_dict() for mapping in await mappings.list_for_doctor(doctor_id)]


@mapping_router.get("/status/{status}")
async def list_mappings_by_status(status: MappingStatus, mappings: AppointmentMappingStateMachine = Depends(get_mappings)):
    return [mapping.to_dict() for mapping in await mappings.list_by_status(status)]


@mapping_router.get("/{appointment_id}")
async def get_mapping(appointment_id: str, mappings: AppointmentMappingStateMachine = Depends(get_mappings)):
    mapping = await mappings.get(appointment_id)
    return mapping.to_dict()


@mapping_router.post("/{appointment_id}/status")
async def set_mapping_status(
    appointment_id: str,
    body: MappingStatusRequest,
    mappings: AppointmentMappingStateMachine = Depends(get_mappings),
):
    mapping = await mappings.set_status(appointment_id, body.status)
    return mapping.to_dict()


# =============================================================================
# SESSIONS
# =============================================================================

@session_router.post("", status_code=201)
async def create_session(body: CreateSessionRequest, sessions: SessionLifecycleManager = Depends(get_sessions)):
    session = await sessions.create_session(
        appointment_id=body.appointment_id,
        patient_id=body.patient_id,
        doctor_id=body.doctor_id,
        scheduled_time=body.scheduled_time,
    )
    return session.to_dict()


@session_router.get("")
async def list_sessions(sessions: SessionLifecycleManager = Depends(get_sessions)):
    return [session.to_dict() for session in await sessions.list_all()]


@session_router.get("/patient/{patient_id}")
async def list_patient_sessions(patient_id: str, sessions: SessionLifecycleManager = Depends(get_sessions)):
    return [session.to_dict() for session in await sessions.list_for_patient(patient_id)]


@session_router.get("/doctor/{doctor_id}")
async def list_doctor_sessions(doctor_id: str, sessions: SessionLifecycleManager = Depends(get_sessions)):
    return [session.to_dict() for session in await sessions.list_for_doctor(doctor_id)]


@session_router.get("/appointment/{appointment_id}")
async def get_appointment_session(appointment_id: str, sessions: SessionLifecycleManager = Depends(get_sessions)):
    session = await sessions.get_for_appointment(appointment_id)
    return session.to_dict()


@session_router.get("/{session_id}")
async def get_session(session_id: str, sessions: SessionLifecycleManager = Depends(get_sessions)):
    session = await sessions.get(session_id)
    return session.to_dict()


@session_router.post("/{session_id}/start")
async def start_session(session_id: str, sessions: SessionLifecycleManager = Depends(get_sessions)):
    session = await sessions.start_session(session_id)
    return session.to_dict()


@session_router.post("/{session_id}/progress")
async def mark_session_in_progress(session_id: str, sessions: SessionLifecycleManager = Depends(get_sessions)):
    session = await sessions.mark_in_progress(session_id)
    return session.to_dict()


@session_router.post("/{session_id}/complete")
async def complete_session(session_id: str, sessions: SessionLifecycleManager = Depends(get_sessions)):
    session = await sessions.complete_session(session_id)
    return session.to_dict()


@session_router.post("/{session_id}/cancel")
async def cancel_session(session_id: str, sessions: SessionLifecycleManager = Depends(get_sessions)):
    session = await sessions.cancel_session(session_id)
    return session.to_dict()


@session_router.post("/{session_id}/no-show")
async def mark_session_no_show(session_id: str, sessions: SessionLifecycleManager = Depends(get_sessions)):
    session = await sessions.mark_no_show(session_id)
    return session.to_dict()


# ----- Attachments -----

@session_router.post("/{session_id}/files", status_code=201)
async def add_session_file(session_id: str, body: AddFileRequest, files: SessionFileService = Depends(get_files)):
    session_file = await files.add_file(session_id=session_id, **body.model_dump())
    return session_file.to_dict()


@session_router.get("/{session_id}/files")
async def list_session_files(
    session_id: str,
    category: Optional[FileCategory] = None,
    uploaded_by: Optional[UploaderRole] = None,
    files: SessionFileService = Depends(get_files),
):
    return [f.to_dict() for f in await files.list_files(session_id, category=category, uploaded_by=uploaded_by)]


@session_router.delete("/{session_id}/files/{file_id}")
async def remove_session_file(session_id: str, file_id: str, files: SessionFileService = Depends(get_files)):
    session_file = await files.remove_file(file_id, session_id=session_id)
    return {"file_id": session_file.id, "deleted": True}
