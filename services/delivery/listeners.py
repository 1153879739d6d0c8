"""
Session delivery event listeners.
"""

from core.orchestration import HandlerRegistry
from shared.events import APPOINTMENT_BOOKED, AppointmentBookedEvent

from .mapping import AppointmentMappingStateMachine

SESSION_SERVICE_GROUP = "session-service-group"


def register_delivery_listeners(registry: HandlerRegistry, mappings: AppointmentMappingStateMachine):
    registry.register(
        APPOINTMENT_BOOKED,
        SESSION_SERVICE_GROUP,
        AppointmentBookedEvent,
        mappings.on_appointment_booked,
        name="map_booked_appointment",
    )
