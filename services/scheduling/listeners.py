"""
Scheduling event listeners.
"""

from core.orchestration import HandlerRegistry
from shared.events import PATIENT_REGISTERED, PatientRegisteredEvent

from .eligibility import EligibilityTracker

SCHEDULING_GROUP = "scheduling-service"


def register_scheduling_listeners(registry: HandlerRegistry, tracker: EligibilityTracker):
    registry.register(
        PATIENT_REGISTERED,
        SCHEDULING_GROUP,
        PatientRegisteredEvent,
        tracker.on_patient_registered,
        name="record_registration",
    )
