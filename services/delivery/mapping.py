"""
Appointment Mapping State Machine.

Builds the delivery service's own view of each appointment from
`appointment.booked` events and session commands:

    PENDING -> CONFIRMED -> SESSION_READY -> COMPLETED | CANCELLED

Every write goes through the mapping transition table, so a mapping
never moves backward.
"""

import logging
from dataclasses import replace
from typing import Dict, List

from core.clock import Clock
from core.data import Repository
from core.domain import PolicyDecision, PolicyResult, ensure_utc
from core.errors import ConsistencyFault, DuplicateKeyError, NotFoundError, PreconditionFailedError
from shared.events import AppointmentBookedEvent
from shared.statuses import (
    MappingStatus,
    SessionStatus,
    mapping_status_for_booking,
    mapping_status_for_session_outcome,
)

from .domain.policies import MappingTransitionPolicy, SessionCreationPolicy
from .models import AppointmentMapping, new_id

logger = logging.getLogger(__name__)

# Statuses an administrator may set directly
OVERRIDE_STATUSES = frozenset({MappingStatus.COMPLETED, MappingStatus.CANCELLED})


class AppointmentMappingStateMachine:
    """
    Owner of AppointmentMapping.

    Consuming a booking is idempotent: a redelivered event for an
    existing mapping changes nothing, and a mapping left in PENDING by
    an interrupted earlier attempt is confirmed by the redelivery.
    """

    def __init__(self, mappings: Repository[AppointmentMapping], clock: Clock):
        self.mappings = mappings
        self.clock = clock
        self.transitions = MappingTransitionPolicy()
        self.creation_policy = SessionCreationPolicy()

    # =========================================================================
    # EVENT HANDLING
    # =========================================================================

    async def on_appointment_booked(self, event: AppointmentBookedEvent) -> AppointmentMapping:
        mapping = await self.mappings.find_by_key(event.appointment_id)
        if mapping is None:
            mapping = await self._create(event)
        elif mapping.status == MappingStatus.PENDING:
            logger.warning(f"Resuming PENDING mapping for appointment {event.appointment_id}")
        else:
            logger.warning(
                f"Duplicate appointment.booked for {event.appointment_id}; "
                f"mapping already {mapping.status.value}"
            )
            return mapping

        if mapping.status != MappingStatus.PENDING:
            return mapping

        # Creation and confirmation are separate writes; a crash in between
        # leaves PENDING, which the next delivery picks up above
        return await self._transition(mapping, mapping_status_for_booking(event.status))

    async def _create(self, event: AppointmentBookedEvent) -> AppointmentMapping:
        now = self.clock.now()
        mapping = AppointmentMapping(
            id=new_id(),
            appointment_id=event.appointment_id,
            patient_id=event.patient_id,
            doctor_id=event.doctor_id,
            appointment_time=ensure_utc(event.scheduled_at),
            status=MappingStatus.PENDING,
            appointment_type=event.appointment_type,
            created_at=now,
            updated_at=now,
        )
        try:
            mapping = await self.mappings.insert(mapping)
        except DuplicateKeyError:
            winner = await self.mappings.find_by_key(event.appointment_id)
            if winner is None:
                raise ConsistencyFault(
                    f"Mapping for {event.appointment_id} rejected as duplicate but not found",
                    {"appointment_id": event.appointment_id},
                )
            logger.warning(f"Lost insert race for mapping {event.appointment_id}; using existing mapping")
            return winner

        logger.info(f"Created mapping for appointment {event.appointment_id} (PENDING)")
        return mapping

    # =========================================================================
    # SESSION GATE
    # =========================================================================

    async def check_session_creation(self, appointment_id: str) -> PolicyDecision:
        mapping = await self.mappings.find_by_key(appointment_id)
        return self.creation_policy.evaluate({"mapping_status": mapping.status if mapping else None})

    async def can_create_session(self, appointment_id: str) -> bool:
        return (await self.check_session_creation(appointment_id)).is_approved

    async def advance_to_session_ready(self, appointment_id: str) -> AppointmentMapping:
        """
        Move a CONFIRMED mapping to SESSION_READY.

        From any other status this returns the mapping unchanged, so a
        retried session-creation command is harmless.
        """
        mapping = await self.get(appointment_id)
        if mapping.status != MappingStatus.CONFIRMED:
            logger.info(f"Mapping {appointment_id} is {mapping.status.value}; not advancing to SESSION_READY")
            return mapping
        return await self._transition(mapping, MappingStatus.SESSION_READY)

    # =========================================================================
    # TERMINAL OUTCOMES
    # =========================================================================

    async def set_status(self, appointment_id: str, status: MappingStatus) -> AppointmentMapping:
        """
        Administrative override to COMPLETED or CANCELLED.

        Raises:
            NotFoundError: no mapping for the appointment
            PreconditionFailedError: target not allowed from the current status
        """
        mapping = await self.get(appointment_id)
        status = MappingStatus(status)
        if mapping.status == status:
            return mapping
        if status not in OVERRIDE_STATUSES:
            raise PreconditionFailedError(
                f"Mapping status can only be set to COMPLETED or CANCELLED, not {status.value}",
                {"appointment_id": appointment_id, "current": mapping.status.value, "target": status.value},
            )
        return await self._transition(mapping, status)

    async def verify_session_outcome(self, appointment_id: str, session_status: SessionStatus) -> PolicyDecision:
        """Whether the mapping can follow a session into `session_status`. Writes nothing."""
        mapping = await self._get_for_session(appointment_id)
        return self._outcome_decision(mapping, mapping_status_for_session_outcome(session_status))

    async def apply_session_outcome(self, appointment_id: str, session_status: SessionStatus) -> AppointmentMapping:
        """Move the mapping to the status matching a terminal session outcome."""
        mapping = await self._get_for_session(appointment_id)
        target = mapping_status_for_session_outcome(session_status)
        if mapping.status == target:
            return mapping

        decision = self._outcome_decision(mapping, target)
        if decision.is_denied:
            raise PreconditionFailedError(decision.reason, {"appointment_id": appointment_id, **decision.metadata})

        if mapping.status == MappingStatus.CONFIRMED and target == MappingStatus.COMPLETED:
            mapping = await self._transition(mapping, MappingStatus.SESSION_READY)
        return await self._transition(mapping, target)

    def _outcome_decision(self, mapping: AppointmentMapping, target: MappingStatus) -> PolicyDecision:
        if mapping.status == target:
            return PolicyDecision(result=PolicyResult.APPROVED, reason=f"Mapping already {target.value}")
        # A session exists, so CONFIRMED can only be an advance that never completed
        current = MappingStatus.SESSION_READY if mapping.status == MappingStatus.CONFIRMED else mapping.status
        return self.transitions.evaluate({"current": current, "target": target})

    async def _get_for_session(self, appointment_id: str) -> AppointmentMapping:
        mapping = await self.mappings.find_by_key(appointment_id)
        if mapping is None:
            logger.error(f"Session exists for appointment {appointment_id} but no mapping does")
            raise ConsistencyFault(
                f"No appointment mapping for appointment {appointment_id} that has a session",
                {"appointment_id": appointment_id},
            )
        return mapping

    async def _transition(self, mapping: AppointmentMapping, target: MappingStatus) -> AppointmentMapping:
        decision = self.transitions.evaluate({"current": mapping.status, "target": target})
        if decision.is_denied:
            raise PreconditionFailedError(
                decision.reason,
                {"appointment_id": mapping.appointment_id, **decision.metadata},
            )

        updated = await self.mappings.update(replace(mapping, status=target, updated_at=self.clock.now()))
        logger.info(f"Mapping {mapping.appointment_id}: {mapping.status.value} -> {target.value}")
        return updated

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get(self, appointment_id: str) -> AppointmentMapping:
        mapping = await self.mappings.find_by_key(appointment_id)
        if mapping is None:
            raise NotFoundError("AppointmentMapping", appointment_id)
        return mapping

    async def list_all(self) -> List[AppointmentMapping]:
        return sorted(await self.mappings.find(), key=lambda m: m.appointment_time)

    async def list_for_patient(self, patient_id: str) -> List[AppointmentMapping]:
        return sorted(await self.mappings.find(patient_id=patient_id), key=lambda m: m.appointment_time)

    async def list_for_doctor(self, doctor_id: str) -> List[AppointmentMapping]:
        return sorted(await self.mappings.find(doctor_id=doctor_id), key=lambda m: m.appointment_time)

    async def list_by_status(self, status: MappingStatus) -> List[AppointmentMapping]:
        return sorted(await self.mappings.find(status=MappingStatus(status)), key=lambda m: m.appointment_time)

    async def count_by_status(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in MappingStatus}
        for mapping in await self.mappings.find():
            counts[mapping.status.value] += 1
        return counts
