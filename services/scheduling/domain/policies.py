"""
Booking Eligibility Policies - Pure Business Rules.

These policies have NO dependencies on databases, the event bus or the
system clock. The evaluation instant is passed in with the context.
"""

from datetime import timedelta
from typing import Any, Dict

from core.domain import PolicyDecision, PolicyEngine, PolicyResult, ensure_utc

# =============================================================================
# CONFIGURATION
# =============================================================================

# Days after registration during which a patient may book
DEFAULT_ELIGIBILITY_WINDOW_DAYS = 3


# =============================================================================
# POLICIES
# =============================================================================

class EligibilityWindowPolicy(PolicyEngine):
    """
    Policy for checking if a patient is still inside the booking window.

    The window is closed-open: a patient registered at T may book at any
    instant before T + window, and not at T + window itself.

    Context required:
        - registered_at: datetime, or None when no registration is on record
        - as_of: datetime the booking is evaluated at
    """

    def __init__(self, window_days: int = DEFAULT_ELIGIBILITY_WINDOW_DAYS):
        if window_days <= 0:
            raise ValueError("Eligibility window must be at least one day")
        self.window_days = window_days
        self.window = timedelta(days=window_days)

    def evaluate(self, context: Dict[str, Any]) -> PolicyDecision:
        registered_at = context.get("registered_at")
        as_of = ensure_utc(context["as_of"])

        if registered_at is None:
            return PolicyDecision(
                result=PolicyResult.DENIED,
                reason="No registration on record for this patient",
                metadata={"registered": False, "window_days": self.window_days},
            )

        registered_at = ensure_utc(registered_at)
        deadline = registered_at + self.window
        metadata = {
            "registered": True,
            "registered_at": registered_at.isoformat(),
            "deadline": deadline.isoformat(),
            "window_days": self.window_days,
        }

        if as_of < deadline:
            remaining = deadline - as_of
            return PolicyDecision(
                result=PolicyResult.APPROVED,
                reason=f"Booking window open until {deadline.isoformat()}",
                metadata={**metadata, "remaining_seconds": int(remaining.total_seconds())},
            )

        return PolicyDecision(
            result=PolicyResult.DENIED,
            reason=f"Booking window closed at {deadline.isoformat()}",
            metadata={**metadata, "expired_seconds": int((as_of - deadline).total_seconds())},
        )
