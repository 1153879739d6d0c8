"""
Service wiring.

Builds every component once, with its store, event bus and clock passed
in through the constructor, and registers the event listeners.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from config import Settings, settings as default_settings
from core.clock import Clock, SystemClock
from core.cosmos import get_cosmos_database
from core.messaging import EventBus, InMemoryEventBus
from core.orchestration import ConsumerRunner, HandlerRegistry
from core.redis_bus import RedisStreamEventBus
from services.delivery.files import SessionFileService
from services.delivery.listeners import register_delivery_listeners
from services.delivery.mapping import AppointmentMappingStateMachine
from services.delivery.repositories import (
    create_mapping_repository,
    create_session_file_repository,
    create_session_repository,
)
from services.delivery.sessions import SessionLifecycleManager
from services.registration.repositories import create_patient_repository
from services.registration.service import PatientRegistrationService
from services.scheduling.booking import AppointmentBookingCoordinator
from services.scheduling.eligibility import EligibilityTracker
from services.scheduling.listeners import register_scheduling_listeners
from services.scheduling.repositories import create_appointment_repository, create_eligibility_repository

logger = logging.getLogger(__name__)

STORAGE_BACKENDS = ("memory", "cosmos")
EVENT_BUS_BACKENDS = ("memory", "redis")


@dataclass
class Services:
    """Every wired component of the three services."""
    bus: EventBus
    clock: Clock
    registry: HandlerRegistry
    runner: ConsumerRunner
    registration: PatientRegistrationService
    eligibility: EligibilityTracker
    booking: AppointmentBookingCoordinator
    mappings: AppointmentMappingStateMachine
    sessions: SessionLifecycleManager
    files: SessionFileService
    storage_backend: str = "memory"
    event_bus_backend: str = "memory"

    async def close(self):
        await self.runner.stop()
        await self.bus.close()


def create_event_bus(settings: Settings) -> EventBus:
    backend = settings.event_bus_backend.lower()
    if backend == "memory":
        return InMemoryEventBus()
    if backend == "redis":
        logger.info(f"Using Redis Streams event bus at {settings.redis_url}")
        return RedisStreamEventBus(
            settings.redis_url,
            block_ms=settings.consumer_block_ms,
            claim_idle_ms=settings.redelivery_idle_ms,
        )
    raise ValueError(f"Unknown EVENT_BUS_BACKEND '{settings.event_bus_backend}', expected one of {EVENT_BUS_BACKENDS}")


def build_services(
    settings: Optional[Settings] = None,
    bus: Optional[EventBus] = None,
    clock: Optional[Clock] = None,
    database=None,
) -> Services:
    """
    Wire all components.

    Args:
        settings: Defaults to the process settings
        bus: Overrides the configured event bus
        clock: Defaults to the system clock
        database: Cosmos DatabaseProxy; opened from settings when the cosmos backend is selected
    """
    settings = settings or default_settings
    clock = clock or SystemClock()
    bus = bus or create_event_bus(settings)

    storage = settings.storage_backend.lower()
    if storage not in STORAGE_BACKENDS:
        raise ValueError(f"Unknown STORAGE_BACKEND '{settings.storage_backend}', expected one of {STORAGE_BACKENDS}")
    if storage == "cosmos" and database is None:
        database = get_cosmos_database(settings.cosmos_endpoint, settings.cosmos_database)

    source = settings.service_name

    # Registration
    registration = PatientRegistrationService(
        create_patient_repository(storage, database), bus, clock, source=source
    )

    # Scheduling
    eligibility = EligibilityTracker(
        create_eligibility_repository(storage, database),
        clock,
        window_days=settings.eligibility_window_days,
    )
    booking = AppointmentBookingCoordinator(
        create_appointment_repository(storage, database), eligibility, bus, clock, source=source
    )

    # Session delivery
    session_store = create_session_repository(storage, database)
    mappings = AppointmentMappingStateMachine(create_mapping_repository(storage, database), clock)
    sessions = SessionLifecycleManager(
        session_store,
        mappings,
        bus,
        clock,
        session_url_base=settings.session_url_base,
        source=source,
    )
    files = SessionFileService(create_session_file_repository(storage, database), session_store, clock)

    # Event listeners
    registry = HandlerRegistry()
    register_scheduling_listeners(registry, eligibility)
    register_delivery_listeners(registry, mappings)
    runner = ConsumerRunner(
        bus,
        registry,
        max_attempts=settings.max_delivery_attempts,
        clock=clock,
        consumer_name=settings.consumer_name or settings.service_name,
    )

    logger.info(f"Services wired (storage={storage}, event bus={settings.event_bus_backend})")
    return Services(
        bus=bus,
        clock=clock,
        registry=registry,
        runner=runner,
        registration=registration,
        eligibility=eligibility,
        booking=booking,
        mappings=mappings,
        sessions=sessions,
        files=files,
        storage_backend=storage,
        event_bus_backend=settings.event_bus_backend.lower(),
    )
