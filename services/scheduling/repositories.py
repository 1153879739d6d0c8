"""
Scheduling Data Layer.

Eligibility records are unique per patient; the store rejects a second
record for the same patient_id.
"""

from core.cosmos import CosmosRepository
from core.data import InMemoryRepository, Repository
from shared.cosmos_config import get_container_name, get_partition_field

from .models import Appointment, EligibilityRecord


def create_eligibility_repository(backend: str = "memory", database=None) -> Repository[EligibilityRecord]:
    if backend == "cosmos":
        return CosmosRepository(
            database,
            get_container_name("eligibility"),
            EligibilityRecord.from_dict,
            entity_type="EligibilityRecord",
            key_field="patient_id",
            partition_field=get_partition_field("eligibility"),
        )
    return InMemoryRepository(entity_type="EligibilityRecord", key_field="patient_id")


def create_appointment_repository(backend: str = "memory", database=None) -> Repository[Appointment]:
    if backend == "cosmos":
        return CosmosRepository(
            database,
            get_container_name("appointments"),
            Appointment.from_dict,
            entity_type="Appointment",
            partition_field=get_partition_field("appointments"),
        )
    return InMemoryRepository(entity_type="Appointment")
