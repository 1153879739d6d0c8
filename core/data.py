"""
Data Layer Base Classes.

The data layer provides the Repository pattern for data access.
This abstracts away the specific data store (Cosmos DB, in-memory, ...)
and provides a clean interface for the services.

Key principles:
- Repositories handle persistence only, no business logic
- Return domain objects, not raw dicts
- Natural keys are unique: a second insert for the same key is rejected
  by the store itself (DuplicateKeyError), never by a check in the caller
- Updates are compare-and-set on the entity version (StaleEntityError)
- Support for different backends via dependency injection
"""

import dataclasses
from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, List, Optional, TypeVar

from .errors import DuplicateKeyError, StaleEntityError, TransientError

# Type variable for entity types
T = TypeVar("T")


class Repository(ABC, Generic[T]):
    """
    Abstract base class for repositories.

    Entities are immutable dataclasses with `id` and `version` fields.
    A repository may declare one natural key (`key_field`) which it keeps unique.

    Example:
        class SessionRepository(Repository[Session]):
            entity_type = "Session"
            key_field = "appointment_id"
    """

    entity_type: str = "Entity"
    key_field: Optional[str] = None

    @abstractmethod
    async def get_by_id(self, id: str) -> Optional[T]:
        """Get an entity by its ID, or None."""
        pass

    @abstractmethod
    async def find_by_key(self, key: Any) -> Optional[T]:
        """Get an entity by its natural key, or None."""
        pass

    @abstractmethod
    async def insert(self, entity: T) -> T:
        """
        Create an entity.

        Raises:
            DuplicateKeyError: id or natural key already taken
        """
        pass

    @abstractmethod
    async def update(self, entity: T) -> T:
        """
        Replace an entity if its stored version still equals `entity.version`.

        Returns:
            The saved entity with its version incremented

        Raises:
            StaleEntityError: another writer got there first
        """
        pass

    @abstractmethod
    async def find(self, **filters: Any) -> List[T]:
        """Entities whose attributes equal all given filters."""
        pass

    @abstractmethod
    async def delete(self, id: str) -> bool:
        """Delete an entity by ID. True if deleted, False if not found."""
        pass


class InMemoryRepository(Repository[T]):
    """
    Dict-backed repository for tests and single-process runs.

    Every operation completes without yielding to the event loop, so a
    check and its write can never interleave with another coroutine.
    """

    def __init__(self, entity_type: Optional[str] = None, key_field: Optional[str] = None):
        if entity_type:
            self.entity_type = entity_type
        if key_field:
            self.key_field = key_field
        self._items: Dict[str, T] = {}
        self._key_index: Dict[Any, str] = {}
        self._available = True

    def set_available(self, available: bool):
        """Simulate the store going away (operations raise TransientError)."""
        self._available = available

    def _check_available(self):
        if not self._available:
            raise TransientError(f"{self.entity_type} store unavailable")

    def _key_of(self, entity: T) -> Any:
        return getattr(entity, self.key_field) if self.key_field else None

    async def get_by_id(self, id: str) -> Optional[T]:
        self._check_available()
        return self._items.get(id)

    async def find_by_key(self, key: Any) -> Optional[T]:
        self._check_available()
        entity_id = self._key_index.get(key)
        return self._items.get(entity_id) if entity_id is not None else None

    async def insert(self, entity: T) -> T:
        self._check_available()
        if entity.id in self._items:
            raise DuplicateKeyError(self.entity_type, entity.id)
        key = self._key_of(entity)
        if self.key_field and key in self._key_index:
            raise DuplicateKeyError(self.entity_type, key)
        self._items[entity.id] = entity
        if self.key_field:
            self._key_index[key] = entity.id
        return entity

    async def update(self, entity: T) -> T:
        self._check_available()
        current = self._items.get(entity.id)
        if current is None or current.version != entity.version:
            raise StaleEntityError(
                self.entity_type,
                entity.id,
                entity.version,
                current.version if current is not None else None,
            )
        saved = dataclasses.replace(entity, version=entity.version + 1)
        self._items[entity.id] = saved
        return saved

    async def find(self, **filters: Any) -> List[T]:
        self._check_available()
        return [
            item for item in self._items.values()
            if all(getattr(item, name) == value for name, value in filters.items())
        ]

    async def delete(self, id: str) -> bool:
        self._check_available()
        entity = self._items.pop(id, None)
        if entity is None:
            return False
        if self.key_field:
            self._key_index.pop(self._key_of(entity), None)
        return True
