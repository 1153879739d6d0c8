"""
Appointment Booking Coordinator.

The single place that decides whether a booking attempt succeeds.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import List, Optional, Union

from core.clock import Clock
from core.data import Repository
from core.domain import ensure_utc
from core.errors import EventPublishError, NotFoundError
from core.messaging import EventBus
from shared.events import AppointmentBookedEvent, publish_event
from shared.statuses import AppointmentStatus

from .eligibility import EligibilityTracker
from .models import Appointment, BookingRejected, new_appointment_id

logger = logging.getLogger(__name__)


class AppointmentBookingCoordinator:
    """
    Books appointments for eligible patients.

    Eligibility is checked once, at booking time, and never again for
    the appointment. The appointment is persisted before
    `appointment.booked` is published; a failed publish is logged and
    leaves the appointment without a downstream mapping until
    `republish` is called.
    """

    def __init__(
        self,
        appointments: Repository[Appointment],
        eligibility: EligibilityTracker,
        bus: EventBus,
        clock: Clock,
        source: str = "scheduling-service",
    ):
        self.appointments = appointments
        self.eligibility = eligibility
        self.bus = bus
        self.clock = clock
        self.source = source

    async def book(
        self,
        patient_id: str,
        doctor_id: str,
        scheduled_at: datetime,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
        appointment_type: str = "consultation",
    ) -> Union[Appointment, BookingRejected]:
        """
        Book an appointment.

        Returns:
            The persisted Appointment, or BookingRejected when the
            patient's window is closed or was never opened
        """
        now = self.clock.now()
        decision = await self.eligibility.explain(patient_id, now)
        if decision.is_denied:
            logger.info(f"Booking rejected for patient {patient_id}: {decision.reason}")
            return BookingRejected(patient_id=patient_id, reason=decision.reason, metadata=decision.metadata)

        appointment = Appointment(
            id=new_appointment_id(),
            patient_id=patient_id,
            doctor_id=doctor_id,
            scheduled_at=ensure_utc(scheduled_at),
            status=AppointmentStatus.SCHEDULED,
            appointment_type=appointment_type or "consultation",
            reason=reason,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        appointment = await self.appointments.insert(appointment)
        logger.info(f"Booked appointment {appointment.id} for patient {patient_id} with doctor {doctor_id}")

        try:
            await self._publish(appointment, booked_at=now)
        except EventPublishError as e:
            logger.warning(f"Appointment {appointment.id} saved but appointment.booked not published: {e}")

        return appointment

    async def republish(self, appointment_id: str) -> Appointment:
        """Re-emit `appointment.booked` for an existing appointment."""
        appointment = await self.get(appointment_id)
        await self._publish(appointment, booked_at=appointment.created_at or self.clock.now())
        return appointment

    async def set_status(self, appointment_id: str, status: AppointmentStatus) -> Appointment:
        """Persist a new status. Publishes nothing."""
        appointment = await self.get(appointment_id)
        status = AppointmentStatus(status)
        if appointment.status == status:
            return appointment

        updated = await self.appointments.update(
            replace(appointment, status=status, updated_at=self.clock.now())
        )
        logger.info(f"Appointment {appointment_id}: {appointment.status.value} -> {status.value}")
        return updated

    async def get(self, appointment_id: str) -> Appointment:
        appointment = await self.appointments.get_by_id(appointment_id)
        if appointment is None:
            raise NotFoundError("Appointment", appointment_id)
        return appointment

    async def list_for_patient(self, patient_id: str) -> List[Appointment]:
        appointments = await self.appointments.find(patient_id=patient_id)
        return sorted(appointments, key=lambda a: a.scheduled_at)

    async def _publish(self, appointment: Appointment, booked_at: datetime):
        event = AppointmentBookedEvent(
            timestamp=self.clock.now(),
            source=self.source,
            appointment_id=appointment.id,
            patient_id=appointment.patient_id,
            doctor_id=appointment.doctor_id,
            scheduled_at=appointment.scheduled_at,
            appointment_type=appointment.appointment_type,
            status=appointment.status,
            reason=appointment.reason,
            notes=appointment.notes,
            booked_at=booked_at,
        )
        await publish_event(self.bus, event)
        logger.info(f"Published appointment.booked for {appointment.id}")
