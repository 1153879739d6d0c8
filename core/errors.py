"""
Error Taxonomy for Cross-Service Coordination.

Every failure the coordination layer reports carries a machine-readable
kind, so the transport layer can map it to a precise outcome:

- INELIGIBLE: business rejection, an expected answer to a valid request
- NOT_FOUND: the target id has no backing entity
- CONFLICT: an entity already exists for a unique key
- PRECONDITION_FAILED: a state-machine guard refused a transition
- INVALID_STATE: the entity is not in a state that allows the command
- TRANSIENT: store or bus unavailable, safe to re-invoke later
- INTERNAL_CONSISTENCY: an entity invariant was found broken
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(Enum):
    """Kinds of coordination failures."""
    INELIGIBLE = "INELIGIBLE"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    PRECONDITION_FAILED = "PRECONDITION_FAILED"
    INVALID_STATE = "INVALID_STATE"
    TRANSIENT = "TRANSIENT"
    INTERNAL_CONSISTENCY = "INTERNAL_CONSISTENCY"


class CoordinationError(Exception):
    """
    Base exception for all coordination errors.

    Should be caught and translated to a response in the API layer,
    or left to propagate out of an event handler so the message is redelivered.
    """

    kind: ErrorKind = ErrorKind.INTERNAL_CONSISTENCY

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.kind.value,
            "message": self.message,
            "details": self.details,
        }


class IneligibleError(CoordinationError):
    """The patient's booking window is closed or was never opened."""
    kind = ErrorKind.INELIGIBLE


class NotFoundError(CoordinationError):
    """Raised when an entity is not found."""
    kind = ErrorKind.NOT_FOUND

    def __init__(self, entity_type: str, entity_id: Any, message: Optional[str] = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            message or f"{entity_type} not found with ID: {entity_id}",
            {"entity_type": entity_type, "entity_id": str(entity_id)},
        )


class ConflictError(CoordinationError):
    """An entity already exists for a unique key."""
    kind = ErrorKind.CONFLICT


class DuplicateKeyError(ConflictError):
    """
    Raised by a store when an insert clashes with a unique natural key.

    Handlers consuming redeliverable events catch this and return the
    entity that won the race instead.
    """

    def __init__(self, entity_type: str, key: Any):
        self.entity_type = entity_type
        self.key = key
        super().__init__(
            f"{entity_type} already exists for key: {key}",
            {"entity_type": entity_type, "key": str(key)},
        )


class PreconditionFailedError(CoordinationError):
    """A state-machine guard rejected the transition."""
    kind = ErrorKind.PRECONDITION_FAILED


class InvalidStateError(CoordinationError):
    """Raised when a command is not valid in the entity's current state."""
    kind = ErrorKind.INVALID_STATE

    def __init__(self, operation: str, current_state: str, message: Optional[str] = None):
        self.operation = operation
        self.current_state = current_state
        super().__init__(
            message or f"Cannot perform '{operation}' in state '{current_state}'",
            {"operation": operation, "current_state": current_state},
        )


class TransientError(CoordinationError):
    """Infrastructure failure; the caller may retry with backoff."""
    kind = ErrorKind.TRANSIENT


class StaleEntityError(TransientError):
    """An optimistic-concurrency write lost against a concurrent writer."""

    def __init__(self, entity_type: str, entity_id: Any, expected_version: int, actual_version: Optional[int] = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Concurrent update of {entity_type} {entity_id}: expected version {expected_version}, found {actual_version}",
            {
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "expected_version": expected_version,
                "actual_version": actual_version,
            },
        )


class EventPublishError(TransientError):
    """The event bus did not accept a publish."""

    def __init__(self, topic: str, key: str, reason: str):
        self.topic = topic
        self.key = key
        super().__init__(
            f"Failed to publish to '{topic}' (key {key}): {reason}",
            {"topic": topic, "key": key},
        )


class ConsistencyFault(CoordinationError):
    """An entity invariant was found violated. Logged, never repaired silently."""
    kind = ErrorKind.INTERNAL_CONSISTENCY
