"""
Patient Registration.

Registers patients and announces each registration on
`patient.registered`, which opens the patient's booking window in the
scheduling service.
"""

import logging
from datetime import date
from typing import List, Optional

from core.clock import Clock
from core.data import Repository
from core.errors import ConflictError, EventPublishError, NotFoundError
from core.messaging import EventBus
from shared.events import PatientRegisteredEvent, publish_event

from .models import Patient, new_patient_id

logger = logging.getLogger(__name__)


class PatientRegistrationService:
    """
    Registration operations.

    The patient is persisted before the event is published. If the
    publish fails the patient stays registered and the caller gets a
    transient error; `republish` re-emits the event later.
    """

    def __init__(self, patients: Repository[Patient], bus: EventBus, clock: Clock, source: str = "registration-service"):
        self.patients = patients
        self.bus = bus
        self.clock = clock
        self.source = source

    async def register(
        self,
        first_name: str,
        last_name: str,
        email: str,
        phone_number: str,
        date_of_birth: Optional[date] = None,
        gender: Optional[str] = None,
        address: Optional[str] = None,
    ) -> Patient:
        """
        Register a new patient.

        Raises:
            ConflictError: email or phone number already registered
            EventPublishError: patient saved but the event was not accepted
        """
        email = email.strip().lower()
        phone_number = phone_number.strip()

        if await self.patients.find_by_key(email) is not None:
            raise ConflictError(
                f"Patient already registered with email: {email}",
                {"field": "email"},
            )
        if await self.patients.find(phone_number=phone_number):
            raise ConflictError(
                f"Patient already registered with phone number: {phone_number}",
                {"field": "phone_number"},
            )

        patient = Patient(
            id=new_patient_id(),
            first_name=first_name,
            last_name=last_name,
            email=email,
            phone_number=phone_number,
            registered_at=self.clock.now(),
            date_of_birth=date_of_birth,
            gender=gender,
            address=address,
        )
        patient = await self.patients.insert(patient)
        logger.info(f"Registered patient {patient.id}")

        await self._publish(patient)
        return patient

    async def republish(self, patient_id: str) -> Patient:
        """Re-emit `patient.registered` for an existing patient."""
        patient = await self.get(patient_id)
        await self._publish(patient)
        return patient

    async def get(self, patient_id: str) -> Patient:
        patient = await self.patients.get_by_id(patient_id)
        if patient is None:
            raise NotFoundError("Patient", patient_id)
        return patient

    async def list_all(self) -> List[Patient]:
        return sorted(await self.patients.find(), key=lambda p: p.registered_at)

    async def _publish(self, patient: Patient):
        event = PatientRegisteredEvent(
            timestamp=self.clock.now(),
            source=self.source,
            patient_id=patient.id,
            contact=patient.phone_number,
            first_name=patient.first_name,
            last_name=patient.last_name,
            email=patient.email,
            registered_at=patient.registered_at,
        )
        try:
            await publish_event(self.bus, event)
        except EventPublishError:
            logger.warning(f"Patient {patient.id} registered but patient.registered was not published")
            raise
        logger.info(f"Published patient.registered for {patient.id}")
