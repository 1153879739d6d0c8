"""
Registration Data Layer.

Patients are keyed naturally by email; the store rejects a second
patient with the same email.
"""

from core.cosmos import CosmosRepository
from core.data import InMemoryRepository, Repository
from shared.cosmos_config import get_container_name, get_partition_field

from .models import Patient


def create_patient_repository(backend: str = "memory", database=None) -> Repository[Patient]:
    if backend == "cosmos":
        return CosmosRepository(
            database,
            get_container_name("patients"),
            Patient.from_dict,
            entity_type="Patient",
            key_field="email",
            partition_field=get_partition_field("patients"),
        )
    return InMemoryRepository(entity_type="Patient", key_field="email")
