"""
Session Delivery Service.

Projects booked appointments into mappings, gates and runs virtual
sessions, and publishes `session.started`.
"""

from .files import SessionFileService
from .mapping import AppointmentMappingStateMachine
from .models import AppointmentMapping, FileCategory, Session, SessionFile, UploaderRole
from .sessions import SessionLifecycleManager

__all__ = [
    "AppointmentMappingStateMachine",
    "SessionFileService",
    "SessionLifecycleManager",
    "AppointmentMapping",
    "FileCategory",
    "Session",
    "SessionFile",
    "UploaderRole",
]
