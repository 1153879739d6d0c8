"""
Delivery Domain Layer.

Transition rules for appointment mappings and sessions. No I/O.
"""

from .policies import (
    MAPPING_TRANSITIONS,
    SESSION_TRANSITIONS,
    MappingTransitionPolicy,
    SessionCreationPolicy,
    SessionTransitionPolicy,
)

__all__ = [
    "MAPPING_TRANSITIONS",
    "SESSION_TRANSITIONS",
    "MappingTransitionPolicy",
    "SessionCreationPolicy",
    "SessionTransitionPolicy",
]
