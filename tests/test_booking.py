"""
Tests for the appointment booking coordinator.
"""

from datetime import timedelta

import pytest

from core.errors import ErrorKind, EventPublishError, IneligibleError, NotFoundError
from services.scheduling.models import Appointment, BookingRejected
from shared.events import APPOINTMENT_BOOKED, AppointmentBookedEvent
from shared.statuses import AppointmentStatus

from conftest import T0, appointment_time


async def open_window(services, patient_id="PAT-1"):
    await services.eligibility.record_registration(patient_id, "+440001", services.clock.now())


class TestBook:
    """Tests for the booking decision."""

    @pytest.mark.asyncio
    async def test_eligible_patient_is_booked_and_published(self, services, bus) -> None:
        await open_window(services)

        result = await services.booking.book("PAT-1", "DOC-7", appointment_time(), reason="Follow-up")

        assert isinstance(result, Appointment)
        assert result.status == AppointmentStatus.SCHEDULED
        assert await services.booking.get(result.id) == result

        published = bus.published(APPOINTMENT_BOOKED)
        assert len(published) == 1
        assert published[0]["appointment_id"] == result.id
        assert published[0]["patient_id"] == "PAT-1"
        assert published[0]["doctor_id"] == "DOC-7"
        assert published[0]["appointment_type"] == "consultation"
        assert published[0]["status"] == "SCHEDULED"
        assert published[0]["event_type"] == "APPOINTMENT_BOOKED"
        assert published[0]["source"] == "telehealth-test"

    @pytest.mark.asyncio
    async def test_ineligible_patient_is_rejected_without_side_effects(self, services, bus, clock) -> None:
        await open_window(services)
        clock.advance(hours=73)

        result = await services.booking.book("PAT-1", "DOC-7", clock.now() + timedelta(days=1))

        assert isinstance(result, BookingRejected)
        assert result.kind == ErrorKind.INELIGIBLE
        assert await services.booking.list_for_patient("PAT-1") == []
        assert bus.published(APPOINTMENT_BOOKED) == []

    @pytest.mark.asyncio
    async def test_unregistered_patient_is_rejected(self, services) -> None:
        result = await services.booking.book("PAT-NOBODY", "DOC-7", appointment_time())

        assert isinstance(result, BookingRejected)
        error = result.to_error()
        assert isinstance(error, IneligibleError)
        assert error.details["patient_id"] == "PAT-NOBODY"

    @pytest.mark.asyncio
    async def test_publish_failure_keeps_appointment(self, services, bus) -> None:
        await open_window(services)
        bus.set_available(False)

        result = await services.booking.book("PAT-1", "DOC-7", appointment_time())

        assert isinstance(result, Appointment)
        assert await services.booking.get(result.id) == result
        assert bus.published(APPOINTMENT_BOOKED) == []

    @pytest.mark.asyncio
    async def test_republish_after_publish_failure(self, services, bus) -> None:
        await open_window(services)
        bus.set_available(False)
        appointment = await services.booking.book("PAT-1", "DOC-7", appointment_time())
        bus.set_available(True)

        await services.booking.republish(appointment.id)

        published = bus.published(APPOINTMENT_BOOKED)
        assert [p["appointment_id"] for p in published] == [appointment.id]
        assert AppointmentBookedEvent.model_validate(published[0]).booked_at == T0

    @pytest.mark.asyncio
    async def test_republish_failure_is_transient(self, services, bus) -> None:
        await open_window(services)
        appointment = await services.booking.book("PAT-1", "DOC-7", appointment_time())
        bus.set_available(False)

        with pytest.raises(EventPublishError) as exc_info:
            await services.booking.republish(appointment.id)
        assert exc_info.value.kind == ErrorKind.TRANSIENT

    @pytest.mark.asyncio
    async def test_eligibility_is_not_rechecked_later(self, services, clock) -> None:
        await open_window(services)
        appointment = await services.booking.book("PAT-1", "DOC-7", appointment_time())
        clock.advance(days=10)

        updated = await services.booking.set_status(appointment.id, AppointmentStatus.CONFIRMED)

        assert updated.status == AppointmentStatus.CONFIRMED


class TestAppointmentQueries:
    """Tests for status updates and reads."""

    @pytest.mark.asyncio
    async def test_set_status_publishes_nothing(self, services, bus) -> None:
        await open_window(services)
        appointment = await services.booking.book("PAT-1", "DOC-7", appointment_time())

        updated = await services.booking.set_status(appointment.id, AppointmentStatus.CANCELLED)

        assert updated.status == AppointmentStatus.CANCELLED
        assert updated.version == appointment.version + 1
        assert len(bus.published(APPOINTMENT_BOOKED)) == 1

    @pytest.mark.asyncio
    async def test_set_same_status_is_noop(self, services) -> None:
        await open_window(services)
        appointment = await services.booking.book("PAT-1", "DOC-7", appointment_time())

        assert await services.booking.set_status(appointment.id, AppointmentStatus.SCHEDULED) == appointment

    @pytest.mark.asyncio
    async def test_unknown_appointment(self, services) -> None:
        with pytest.raises(NotFoundError):
            await services.booking.get("APPT-MISSING")
        with pytest.raises(NotFoundError):
            await services.booking.set_status("APPT-MISSING", AppointmentStatus.CANCELLED)
        with pytest.raises(NotFoundError):
            await services.booking.republish("APPT-MISSING")

    @pytest.mark.asyncio
    async def test_list_for_patient_is_ordered(self, services) -> None:
        await open_window(services)
        later = await services.booking.book("PAT-1", "DOC-7", appointment_time(hours=50))
        sooner = await services.booking.book("PAT-1", "DOC-8", appointment_time(hours=26))

        assert [a.id for a in await services.booking.list_for_patient("PAT-1")] == [sooner.id, later.id]
