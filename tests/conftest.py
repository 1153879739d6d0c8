"""
Shared pytest fixtures for all tests.

Everything runs in-process: manual clock, in-memory event bus and
in-memory stores, wired exactly as the application wires them.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from bootstrap import Services, build_services
from config import Settings
from core.clock import ManualClock
from core.messaging import InMemoryEventBus
from shared.events import AppointmentBookedEvent
from shared.statuses import AppointmentStatus

T0 = datetime(2030, 3, 4, 9, 0, tzinfo=timezone.utc)

DRAIN_TIMEOUT = 2.0


# ============================================================================
# CORE FIXTURES
# ============================================================================


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(T0)


@pytest.fixture
def bus() -> InMemoryEventBus:
    return InMemoryEventBus()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        STORAGE_BACKEND="memory",
        EVENT_BUS_BACKEND="memory",
        START_CONSUMERS=False,
        MAX_DELIVERY_ATTEMPTS=3,
        ELIGIBILITY_WINDOW_DAYS=3,
        SERVICE_NAME="telehealth-test",
    )


@pytest.fixture
def services(test_settings: Settings, bus: InMemoryEventBus, clock: ManualClock) -> Services:
    return build_services(test_settings, bus=bus, clock=clock)


@pytest_asyncio.fixture
async def consumers(services: Services):
    """Run every registered consumer for the duration of a test."""
    services.runner.start()
    yield services.runner
    await services.runner.stop()


# ============================================================================
# HELPERS
# ============================================================================


async def drain(bus: InMemoryEventBus, topic: str, group: str):
    """Wait until a consumer group has settled everything published so far."""
    await asyncio.wait_for(bus.join(topic, group), timeout=DRAIN_TIMEOUT)


async def register_patient(services: Services, suffix: str = "1"):
    return await services.registration.register(
        first_name="Ada",
        last_name=f"Lovelace{suffix}",
        email=f"ada{suffix}@example.com",
        phone_number=f"+4470000000{suffix}",
    )


def appointment_time(hours: int = 48) -> datetime:
    return T0 + timedelta(hours=hours)


def booked_event(appointment_id: str = "42", status: AppointmentStatus = AppointmentStatus.SCHEDULED, hours: int = 48):
    return AppointmentBookedEvent(
        timestamp=T0,
        source="scheduling-service",
        appointment_id=appointment_id,
        patient_id="PAT-1",
        doctor_id="DOC-7",
        scheduled_at=appointment_time(hours),
        status=status,
        booked_at=T0,
    )
