"""
End-to-end flows across the three services, driven through the real
consumers on the in-memory bus.
"""

from datetime import timedelta

import pytest

from core.errors import ErrorKind, InvalidStateError, PreconditionFailedError
from services.delivery.listeners import SESSION_SERVICE_GROUP
from services.delivery.models import AppointmentMapping
from services.scheduling.listeners import SCHEDULING_GROUP
from services.scheduling.models import Appointment, BookingRejected
from shared.events import (
    APPOINTMENT_BOOKED,
    PATIENT_REGISTERED,
    SESSION_STARTED,
    publish_event,
)
from shared.statuses import MappingStatus, SessionStatus

from conftest import appointment_time, booked_event, drain, register_patient


async def registered_and_tracked(services, bus):
    patient = await register_patient(services)
    await drain(bus, PATIENT_REGISTERED, SCHEDULING_GROUP)
    return patient


class TestScenarios:
    """Registration, booking and session delivery working together."""

    @pytest.mark.asyncio
    async def test_booking_inside_window(self, services, bus, clock, consumers) -> None:
        patient = await registered_and_tracked(services, bus)
        clock.advance(hours=1)

        result = await services.booking.book(patient.id, "DOC-7", clock.now() + timedelta(days=1))

        assert isinstance(result, Appointment)
        assert await services.booking.list_for_patient(patient.id) == [result]
        assert [p["appointment_id"] for p in bus.published(APPOINTMENT_BOOKED)] == [result.id]

    @pytest.mark.asyncio
    async def test_booking_after_window(self, services, bus, clock, consumers) -> None:
        patient = await registered_and_tracked(services, bus)
        clock.advance(hours=73)

        result = await services.booking.book(patient.id, "DOC-7", appointment_time(24 * 5))

        assert isinstance(result, BookingRejected)
        assert result.kind == ErrorKind.INELIGIBLE
        assert await services.booking.list_for_patient(patient.id) == []
        assert bus.published(APPOINTMENT_BOOKED) == []

    @pytest.mark.asyncio
    async def test_duplicate_booking_event(self, services, bus, consumers) -> None:
        event = booked_event("42")
        await publish_event(bus, event)
        await publish_event(bus, event)

        await drain(bus, APPOINTMENT_BOOKED, SESSION_SERVICE_GROUP)

        mappings = await services.mappings.mappings.find(appointment_id="42")
        assert len(mappings) == 1
        assert mappings[0].status == MappingStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_session_gated_until_mapping_confirmed(self, services, bus, consumers) -> None:
        await services.mappings.mappings.insert(
            AppointmentMapping(
                id="map-42",
                appointment_id="42",
                patient_id="PAT-1",
                doctor_id="DOC-7",
                appointment_time=appointment_time(),
                status=MappingStatus.PENDING,
            )
        )

        with pytest.raises(PreconditionFailedError):
            await services.sessions.create_session("42", "PAT-1", "DOC-7", appointment_time())

        # Redelivery of the booking finishes the confirmation
        await publish_event(bus, booked_event("42"))
        await drain(bus, APPOINTMENT_BOOKED, SESSION_SERVICE_GROUP)
        assert (await services.mappings.get("42")).status == MappingStatus.CONFIRMED

        session = await services.sessions.create_session("42", "PAT-1", "DOC-7", appointment_time())

        assert session.status == SessionStatus.SCHEDULED
        assert (await services.mappings.get("42")).status == MappingStatus.SESSION_READY

    @pytest.mark.asyncio
    async def test_session_started_once(self, services, bus, consumers) -> None:
        await publish_event(bus, booked_event("42"))
        await drain(bus, APPOINTMENT_BOOKED, SESSION_SERVICE_GROUP)
        session = await services.sessions.create_session("42", "PAT-1", "DOC-7", appointment_time())

        await services.sessions.start_session(session.id)
        with pytest.raises(InvalidStateError) as exc_info:
            await services.sessions.start_session(session.id)

        assert exc_info.value.kind == ErrorKind.INVALID_STATE
        assert exc_info.value.current_state == SessionStatus.STARTED.value
        assert len(bus.published(SESSION_STARTED)) == 1

    @pytest.mark.asyncio
    async def test_full_journey(self, services, bus, clock, consumers) -> None:
        patient = await registered_and_tracked(services, bus)
        clock.advance(hours=2)
        appointment = await services.booking.book(patient.id, "DOC-7", appointment_time(48), reason="Check-up")
        await drain(bus, APPOINTMENT_BOOKED, SESSION_SERVICE_GROUP)

        mapping = await services.mappings.get(appointment.id)
        assert mapping.status == MappingStatus.CONFIRMED
        assert mapping.patient_id == patient.id
        assert mapping.appointment_time == appointment.scheduled_at

        session = await services.sessions.create_session(
            appointment.id, patient.id, appointment.doctor_id, appointment.scheduled_at
        )
        await services.sessions.start_session(session.id)
        await services.sessions.mark_in_progress(session.id)
        await services.sessions.complete_session(session.id)

        assert (await services.mappings.get(appointment.id)).status == MappingStatus.COMPLETED
        started = bus.published(SESSION_STARTED)
        assert [p["appointment_id"] for p in started] == [appointment.id]
