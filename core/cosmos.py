"""
Azure Cosmos DB repository base.

Documents are the entity's to_dict() form, with the entity id as the
document id. Natural-key uniqueness is delegated to the container:
the natural key is the partition key and the container carries a
unique key policy on it (see scripts/provision_cosmosdb.py), so Cosmos
rejects a second create for the same key with 409.
Updates replace the document only if its etag is unchanged since it
was read, so concurrent writers cannot both succeed.
"""

import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Optional

from azure.core import MatchConditions
from azure.cosmos import CosmosClient
from azure.cosmos.exceptions import (
    CosmosAccessConditionFailedError,
    CosmosHttpResponseError,
    CosmosResourceExistsError,
    CosmosResourceNotFoundError,
)
from azure.identity import DefaultAzureCredential

from .data import Repository, T
from .errors import DuplicateKeyError, StaleEntityError, TransientError

logger = logging.getLogger(__name__)

# Status codes worth retrying: timeout, throttled, unavailable
_TRANSIENT_STATUS_CODES = {408, 429, 449, 500, 503}


def get_cosmos_database(endpoint: str, database_name: str):
    """Open a database client using DefaultAzureCredential."""
    if not endpoint:
        raise RuntimeError("COSMOS_ENDPOINT must be set when STORAGE_BACKEND=cosmos")

    logger.info("Initializing Cosmos DB connection...")
    credential = DefaultAzureCredential(
        exclude_interactive_browser_credential=True,
    )
    client = CosmosClient(endpoint, credential=credential)
    database = client.get_database_client(database_name)
    logger.info(f"Connected to Cosmos DB: {database_name}")
    return database


@contextmanager
def _translate_errors(entity_type: str):
    try:
        yield
    except CosmosHttpResponseError as e:
        if e.status_code in _TRANSIENT_STATUS_CODES:
            raise TransientError(
                f"{entity_type} store unavailable ({e.status_code})",
                {"status_code": e.status_code},
            ) from e
        raise


class CosmosRepository(Repository[T]):
    """
    Repository for one entity type stored in one Cosmos container.

    Args:
        database: DatabaseProxy from get_cosmos_database()
        container_name: Container holding the documents
        entity_type: Name used in errors and logs
        key_field: Natural key kept unique by the container
        from_dict: Builds an entity from a stored document
        partition_field: Partition key field; defaults to the natural key, then "id"
    """

    def __init__(
        self,
        database,
        container_name: str,
        from_dict: Callable[[Dict[str, Any]], T],
        entity_type: Optional[str] = None,
        key_field: Optional[str] = None,
        partition_field: Optional[str] = None,
    ):
        if entity_type:
            self.entity_type = entity_type
        if key_field:
            self.key_field = key_field
        self._database = database
        self._container_name = container_name
        self._from_dict = from_dict
        self._partition_field = partition_field or self.key_field or "id"
        self._container = None

    def _get_container(self):
        """Get the container client, caching for reuse."""
        if self._container is None:
            self._container = self._database.get_container_client(self._container_name)
        return self._container

    def _query(self, where: Dict[str, Any], partition_key: Any = None) -> List[Dict[str, Any]]:
        clauses = " AND ".join(f"c.{name} = @{name}" for name in where) or "true"
        query = f"SELECT * FROM c WHERE {clauses}"
        params = [{"name": f"@{name}", "value": value} for name, value in where.items()]
        container = self._get_container()
        if partition_key is not None:
            return list(container.query_items(query, parameters=params, partition_key=partition_key))
        return list(container.query_items(query, parameters=params, enable_cross_partition_query=True))

    async def get_by_id(self, id: str) -> Optional[T]:
        with _translate_errors(self.entity_type):
            if self._partition_field == "id":
                try:
                    return self._from_dict(self._get_container().read_item(item=id, partition_key=id))
                except CosmosResourceNotFoundError:
                    return None
            items = self._query({"id": id})
        return self._from_dict(items[0]) if items else None

    async def find_by_key(self, key: Any) -> Optional[T]:
        if not self.key_field:
            return None
        with _translate_errors(self.entity_type):
            items = self._query({self.key_field: key}, partition_key=key)
        return self._from_dict(items[0]) if items else None

    async def insert(self, entity: T) -> T:
        doc = entity.to_dict()
        with _translate_errors(self.entity_type):
            try:
                self._get_container().create_item(body=doc)
            except CosmosResourceExistsError:
                key = doc.get(self.key_field) if self.key_field else doc["id"]
                raise DuplicateKeyError(self.entity_type, key)
        return entity

    async def update(self, entity: T) -> T:
        doc = entity.to_dict()
        partition_key = doc[self._partition_field]
        container = self._get_container()
        with _translate_errors(self.entity_type):
            try:
                current = container.read_item(item=entity.id, partition_key=partition_key)
            except CosmosResourceNotFoundError:
                raise StaleEntityError(self.entity_type, entity.id, entity.version, None)

            if current.get("version") != entity.version:
                raise StaleEntityError(self.entity_type, entity.id, entity.version, current.get("version"))

            doc["version"] = entity.version + 1
            try:
                container.replace_item(
                    item=entity.id,
                    body=doc,
                    etag=current["_etag"],
                    match_condition=MatchConditions.IfNotModified,
                )
            except CosmosAccessConditionFailedError:
                raise StaleEntityError(self.entity_type, entity.id, entity.version)
        return self._from_dict(doc)

    async def find(self, **filters: Any) -> List[T]:
        where = {name: getattr(value, "value", value) for name, value in filters.items()}
        with _translate_errors(self.entity_type):
            return [self._from_dict(item) for item in self._query(where)]

    async def delete(self, id: str) -> bool:
        entity = await self.get_by_id(id)
        if entity is None:
            return False
        partition_key = entity.to_dict()[self._partition_field]
        with _translate_errors(self.entity_type):
            try:
                self._get_container().delete_item(item=id, partition_key=partition_key)
            except CosmosResourceNotFoundError:
                return False
        return True
