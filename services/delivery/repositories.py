"""
Delivery Data Layer.

Mappings and sessions are both unique per appointment_id; the store
rejects a second insert for the same appointment.
"""

from core.cosmos import CosmosRepository
from core.data import InMemoryRepository, Repository
from shared.cosmos_config import get_container_name, get_partition_field

from .models import AppointmentMapping, Session, SessionFile


def create_mapping_repository(backend: str = "memory", database=None) -> Repository[AppointmentMapping]:
    if backend == "cosmos":
        return CosmosRepository(
            database,
            get_container_name("mappings"),
            AppointmentMapping.from_dict,
            entity_type="AppointmentMapping",
            key_field="appointment_id",
            partition_field=get_partition_field("mappings"),
        )
    return InMemoryRepository(entity_type="AppointmentMapping", key_field="appointment_id")


def create_session_repository(backend: str = "memory", database=None) -> Repository[Session]:
    if backend == "cosmos":
        return CosmosRepository(
            database,
            get_container_name("sessions"),
            Session.from_dict,
            entity_type="Session",
            key_field="appointment_id",
            partition_field=get_partition_field("sessions"),
        )
    return InMemoryRepository(entity_type="Session", key_field="appointment_id")


def create_session_file_repository(backend: str = "memory", database=None) -> Repository[SessionFile]:
    if backend == "cosmos":
        return CosmosRepository(
            database,
            get_container_name("session_files"),
            SessionFile.from_dict,
            entity_type="SessionFile",
            partition_field=get_partition_field("session_files"),
        )
    return InMemoryRepository(entity_type="SessionFile")
