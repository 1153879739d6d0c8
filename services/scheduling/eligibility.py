"""
Eligibility Tracker.

Keeps one booking window per patient, opened by the first
`patient.registered` event seen for that patient, and answers
eligibility queries against it.
"""

import logging
from datetime import datetime
from typing import Optional, Set

from core.clock import Clock
from core.data import Repository
from core.domain import PolicyDecision, ensure_utc
from core.errors import ConsistencyFault, DuplicateKeyError
from shared.events import PatientRegisteredEvent

from .domain.policies import DEFAULT_ELIGIBILITY_WINDOW_DAYS, EligibilityWindowPolicy
from .models import EligibilityRecord

logger = logging.getLogger(__name__)


class EligibilityTracker:
    """
    Owner of EligibilityRecord.

    Recording is idempotent: a second registration for the same patient,
    whether a redelivered event or a concurrent one, leaves the first
    window in place.
    """

    def __init__(
        self,
        records: Repository[EligibilityRecord],
        clock: Clock,
        window_days: int = DEFAULT_ELIGIBILITY_WINDOW_DAYS,
    ):
        self.records = records
        self.clock = clock
        self.policy = EligibilityWindowPolicy(window_days)

    async def record_registration(self, patient_id: str, contact: str, registered_at: datetime) -> EligibilityRecord:
        """Open the booking window for a patient, or return the one already open."""
        existing = await self.records.find_by_key(patient_id)
        if existing is not None:
            logger.warning(
                f"Registration for patient {patient_id} already recorded at "
                f"{existing.registered_at.isoformat()}; ignoring duplicate"
            )
            return existing

        record = EligibilityRecord(
            id=patient_id,
            patient_id=patient_id,
            contact=contact,
            registered_at=ensure_utc(registered_at),
        )
        try:
            record = await self.records.insert(record)
        except DuplicateKeyError:
            winner = await self.records.find_by_key(patient_id)
            if winner is None:
                raise ConsistencyFault(
                    f"Eligibility record for {patient_id} rejected as duplicate but not found",
                    {"patient_id": patient_id},
                )
            logger.warning(f"Lost insert race for eligibility record {patient_id}; using existing record")
            return winner

        logger.info(
            f"Booking window opened for patient {patient_id} "
            f"until {(record.registered_at + self.policy.window).isoformat()}"
        )
        return record

    async def on_patient_registered(self, event: PatientRegisteredEvent) -> EligibilityRecord:
        return await self.record_registration(event.patient_id, event.contact, event.registered_at)

    async def explain(self, patient_id: str, as_of: Optional[datetime] = None) -> PolicyDecision:
        """Policy decision for a patient at `as_of` (defaults to now)."""
        record = await self.records.find_by_key(patient_id)
        return self.policy.evaluate({
            "registered_at": record.registered_at if record else None,
            "as_of": as_of or self.clock.now(),
        })

    async def is_eligible(self, patient_id: str, as_of: Optional[datetime] = None) -> bool:
        return (await self.explain(patient_id, as_of)).is_approved

    async def list_eligible(self, as_of: Optional[datetime] = None) -> Set[str]:
        """Ids of all patients whose window is still open at `as_of`."""
        as_of = as_of or self.clock.now()
        return {
            record.patient_id
            for record in await self.records.find()
            if self.policy.evaluate({"registered_at": record.registered_at, "as_of": as_of}).is_approved
        }
