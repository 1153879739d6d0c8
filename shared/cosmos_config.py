"""
Azure Cosmos DB Configuration.

Centralized container layout for all three services. This ensures
consistency between the repositories and the provisioning script.

A natural key is enforced by partitioning on it and declaring it as the
container's unique key: Cosmos then rejects a second document with the
same key value.
"""

from typing import Dict, Optional, Tuple

# =============================================================================
# CONTAINERS
# =============================================================================

# Format: logical_name -> (container_name, partition_key_path, unique_key_path)
COSMOS_CONTAINERS: Dict[str, Tuple[str, str, Optional[str]]] = {
    # Registration service
    "patients": ("Registration_Patients", "/email", "/email"),
    # Scheduling service
    "eligibility": ("Scheduling_EligibilityRecords", "/patient_id", "/patient_id"),
    "appointments": ("Scheduling_Appointments", "/id", None),
    # Session delivery service
    "mappings": ("Delivery_AppointmentMappings", "/appointment_id", "/appointment_id"),
    "sessions": ("Delivery_Sessions", "/appointment_id", "/appointment_id"),
    "session_files": ("Delivery_SessionFiles", "/session_id", None),
}

# Simple container name lookup (without partition key)
COSMOS_CONTAINER_NAMES = {
    key: name for key, (name, _, _) in COSMOS_CONTAINERS.items()
}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def get_container_name(logical_name: str) -> str:
    """Get the actual container name for a logical container name."""
    if logical_name in COSMOS_CONTAINER_NAMES:
        return COSMOS_CONTAINER_NAMES[logical_name]
    raise ValueError(f"Unknown container: {logical_name}")


def get_partition_field(logical_name: str) -> str:
    """Document field used as partition key (path without the leading slash)."""
    _, partition_key, _ = COSMOS_CONTAINERS[logical_name]
    return partition_key.lstrip("/")
