"""
Cosmos DB Provisioning Script for the Telehealth Coordination Services.

Creates the database and every container with the partition key and
unique key policy the repositories rely on. A container keyed by a
natural key (patient email, eligibility patient_id, mapping and session
appointment_id) rejects a second document with the same key, which is
what makes concurrent create attempts converge.

Usage:
    python scripts/provision_cosmosdb.py

Environment:
    COSMOS_ENDPOINT - Cosmos DB account endpoint (required)
    COSMOS_DATABASE - Database name (default: telehealth)
"""

import logging
import sys
from pathlib import Path

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from azure.cosmos import CosmosClient, PartitionKey
from azure.cosmos.exceptions import CosmosHttpResponseError
from azure.identity import AzureCliCredential

from config import settings
from shared.cosmos_config import COSMOS_CONTAINERS

# Configure logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def provision_container(database, container_name: str, partition_key: str, unique_key):
    """Create a container if it does not exist yet."""
    kwargs = {}
    if unique_key:
        kwargs["unique_key_policy"] = {"uniqueKeys": [{"paths": [unique_key]}]}
    database.create_container_if_not_exists(
        id=container_name,
        partition_key=PartitionKey(path=partition_key),
        **kwargs,
    )
    suffix = f", unique: {unique_key}" if unique_key else ""
    logger.info(f"  {container_name} (partition: {partition_key}{suffix})")


def main():
    """Create the database and all containers."""
    endpoint = settings.cosmos_endpoint
    database_name = settings.cosmos_database

    logger.info("=" * 60)
    logger.info("Telehealth Coordination - Cosmos DB Provisioning Script")
    logger.info("=" * 60)
    logger.info(f"Endpoint: {endpoint or '(not set)'}")
    logger.info(f"Database: {database_name}")
    logger.info("Authentication: AzureCliCredential")
    logger.info("=" * 60)

    if not endpoint:
        logger.error("COSMOS_ENDPOINT is not set")
        sys.exit(1)

    logger.info("Authenticating with Azure CLI...")
    client = CosmosClient(endpoint, credential=AzureCliCredential())

    try:
        database = client.create_database_if_not_exists(id=database_name)
    except CosmosHttpResponseError as e:
        logger.error(f"Database '{database_name}' could not be created or accessed: {e}")
        logger.error("Check RBAC permissions, or create the database with the Azure CLI")
        sys.exit(1)

    logger.info("--- Containers ---")
    for container_name, partition_key, unique_key in COSMOS_CONTAINERS.values():
        provision_container(database, container_name, partition_key, unique_key)

    logger.info("=" * 60)
    logger.info(f"COMPLETE: {len(COSMOS_CONTAINERS)} containers ready in '{database_name}'")
    logger.info("=" * 60)

    # Unique key policies cannot be added to an existing container
    logger.info("--- Azure CLI equivalents ---")
    for container_name, partition_key, unique_key in COSMOS_CONTAINERS.values():
        unique = f' --unique-key-policy \'{{"uniqueKeys": [{{"paths": ["{unique_key}"]}}]}}\'' if unique_key else ""
        logger.info(
            f'az cosmosdb sql container create --account-name "<account>" --database-name "{database_name}" '
            f'--name "{container_name}" --partition-key-path "{partition_key}" --resource-group "<resource-group>"{unique}'
        )


if __name__ == "__main__":
    main()
