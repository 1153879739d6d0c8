"""
Session Lifecycle Manager.

    SCHEDULED -> STARTED -> IN_PROGRESS -> COMPLETED | CANCELLED | NO_SHOW

Creation is gated by the appointment mapping. Starting a session
publishes `session.started`; terminal outcomes are mirrored onto the
mapping.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import List

from core.clock import Clock
from core.data import Repository
from core.domain import ensure_utc
from core.errors import ConflictError, InvalidStateError, NotFoundError, PreconditionFailedError
from core.messaging import EventBus
from shared.events import SessionStartedEvent, publish_event
from shared.statuses import SessionStatus

from .domain.policies import SessionTransitionPolicy
from .mapping import AppointmentMappingStateMachine
from .models import Session, new_id

logger = logging.getLogger(__name__)

DEFAULT_SESSION_URL_BASE = "https://telemedicine.example.com/session/"


class SessionLifecycleManager:
    """
    Owner of Session.

    Session and mapping live in different stores, so creating a session
    and advancing its mapping are two writes. A caller that retries an
    interrupted creation gets CONFLICT, and the retry also finishes the
    mapping advance.
    """

    def __init__(
        self,
        sessions: Repository[Session],
        mappings: AppointmentMappingStateMachine,
        bus: EventBus,
        clock: Clock,
        session_url_base: str = DEFAULT_SESSION_URL_BASE,
        source: str = "session-service",
    ):
        self.sessions = sessions
        self.mappings = mappings
        self.bus = bus
        self.clock = clock
        self.session_url_base = session_url_base
        self.source = source
        self.transitions = SessionTransitionPolicy()

    async def create_session(
        self,
        appointment_id: str,
        patient_id: str,
        doctor_id: str,
        scheduled_time: datetime,
    ) -> Session:
        """
        Create the session for an appointment.

        Raises:
            ConflictError: a session already exists for the appointment
            PreconditionFailedError: the mapping is not CONFIRMED or SESSION_READY
        """
        existing = await self.sessions.find_by_key(appointment_id)
        if existing is not None:
            await self.mappings.advance_to_session_ready(appointment_id)
            raise ConflictError(
                f"Session already exists for appointment {appointment_id}",
                {"appointment_id": appointment_id, "session_id": existing.id},
            )

        decision = await self.mappings.check_session_creation(appointment_id)
        if decision.is_denied:
            raise PreconditionFailedError(decision.reason, {"appointment_id": appointment_id, **decision.metadata})

        now = self.clock.now()
        session = Session(
            id=new_id(),
            appointment_id=appointment_id,
            patient_id=patient_id,
            doctor_id=doctor_id,
            scheduled_time=ensure_utc(scheduled_time),
            session_url=f"{self.session_url_base}{new_id()}",
            status=SessionStatus.SCHEDULED,
            created_at=now,
            updated_at=now,
        )
        session = await self.sessions.insert(session)
        logger.info(f"Created session {session.id} for appointment {appointment_id}")

        await self.mappings.advance_to_session_ready(appointment_id)
        return session

    async def start_session(self, session_id: str) -> Session:
        """
        SCHEDULED -> STARTED, then publish `session.started`.

        A failed publish propagates to the caller; the session stays STARTED.
        """
        session = await self.get(session_id)
        if session.status != SessionStatus.SCHEDULED:
            raise InvalidStateError("start", session.status.value)

        now = self.clock.now()
        started = await self.sessions.update(
            replace(session, status=SessionStatus.STARTED, start_time=now, updated_at=now)
        )
        logger.info(f"Session {session_id}: SCHEDULED -> STARTED")

        event = SessionStartedEvent(
            timestamp=now,
            source=self.source,
            session_id=started.id,
            appointment_id=started.appointment_id,
            patient_id=started.patient_id,
            doctor_id=started.doctor_id,
            session_url=started.session_url,
            start_time=now,
            scheduled_time=started.scheduled_time,
        )
        await publish_event(self.bus, event)
        logger.info(f"Published session.started for {session_id}")
        return started

    async def mark_in_progress(self, session_id: str) -> Session:
        """STARTED -> IN_PROGRESS, reported by the media plane once both parties join."""
        session = await self.get(session_id)
        if session.status != SessionStatus.STARTED:
            raise InvalidStateError("mark in progress", session.status.value)

        updated = await self.sessions.update(
            replace(session, status=SessionStatus.IN_PROGRESS, updated_at=self.clock.now())
        )
        logger.info(f"Session {session_id}: STARTED -> IN_PROGRESS")
        return updated

    async def complete_session(self, session_id: str) -> Session:
        return await self._finish(session_id, SessionStatus.COMPLETED, "complete")

    async def cancel_session(self, session_id: str) -> Session:
        return await self._finish(session_id, SessionStatus.CANCELLED, "cancel")

    async def mark_no_show(self, session_id: str) -> Session:
        return await self._finish(session_id, SessionStatus.NO_SHOW, "mark no-show")

    async def _finish(self, session_id: str, target: SessionStatus, operation: str) -> Session:
        session = await self.get(session_id)

        if session.status == target:
            # Retry of an outcome whose mapping update did not land
            logger.warning(f"Session {session_id} already {target.value}; re-applying mapping outcome")
            await self.mappings.apply_session_outcome(session.appointment_id, target)
            return session

        decision = self.transitions.evaluate({"current": session.status, "target": target})
        if decision.is_denied:
            raise InvalidStateError(operation, session.status.value, decision.reason)

        mapping_decision = await self.mappings.verify_session_outcome(session.appointment_id, target)
        if mapping_decision.is_denied:
            raise PreconditionFailedError(
                mapping_decision.reason,
                {"session_id": session_id, "appointment_id": session.appointment_id, **mapping_decision.metadata},
            )

        now = self.clock.now()
        finished = await self.sessions.update(replace(session, status=target, end_time=now, updated_at=now))
        logger.info(f"Session {session_id}: {session.status.value} -> {target.value}")

        await self.mappings.apply_session_outcome(session.appointment_id, target)
        return finished

    # ----- Queries -----

    async def get(self, session_id: str) -> Session:
        session = await self.sessions.get_by_id(session_id)
        if session is None:
            raise NotFoundError("Session", session_id)
        return session

    async def get_for_appointment(self, appointment_id: str) -> Session:
        session = await self.sessions.find_by_key(appointment_id)
        if session is None:
            raise NotFoundError("Session", appointment_id, f"No session for appointment {appointment_id}")
        return session

    async def list_all(self) -> List[Session]:
        return sorted(await self.sessions.find(), key=lambda s: s.scheduled_time)

    async def list_for_patient(self, patient_id: str) -> List[Session]:
        return sorted(await self.sessions.find(patient_id=patient_id), key=lambda s: s.scheduled_time)

    async def list_for_doctor(self, doctor_id: str) -> List[Session]:
        return sorted(await self.sessions.find(doctor_id=doctor_id), key=lambda s: s.scheduled_time)
