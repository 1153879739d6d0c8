"""
Scheduling Domain Layer.

Pure business rules for appointment booking. No database access or I/O.
"""

from .policies import DEFAULT_ELIGIBILITY_WINDOW_DAYS, EligibilityWindowPolicy

__all__ = [
    "DEFAULT_ELIGIBILITY_WINDOW_DAYS",
    "EligibilityWindowPolicy",
]
