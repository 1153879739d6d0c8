"""
Core Framework for the Telehealth Coordination Services.

This module provides the service-independent building blocks every
service is assembled from. The layered architecture ensures:

1. Domain Layer - Pure business rules (policies), no I/O
2. Data Layer - Repository pattern for data access
3. Messaging Layer - Ordered, at-least-once event bus
4. Orchestration Layer - Consumer loops that drive idempotent handlers

Each service follows this pattern for consistency and reusability.
"""

from .clock import Clock, ManualClock, SystemClock
from .data import InMemoryRepository, Repository
from .domain import PolicyDecision, PolicyEngine, PolicyResult
from .errors import CoordinationError, ErrorKind
from .messaging import Delivery, EventBus, InMemoryEventBus
from .orchestration import ConsumerRunner, EventConsumer, HandlerRegistry

__all__ = [
    # Clock
    "Clock",
    "ManualClock",
    "SystemClock",
    # Domain
    "PolicyDecision",
    "PolicyEngine",
    "PolicyResult",
    # Data
    "InMemoryRepository",
    "Repository",
    # Errors
    "CoordinationError",
    "ErrorKind",
    # Messaging
    "Delivery",
    "EventBus",
    "InMemoryEventBus",
    # Orchestration
    "ConsumerRunner",
    "EventConsumer",
    "HandlerRegistry",
]
