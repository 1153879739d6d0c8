"""
Delivery Transition Policies - Pure Business Rules.

Transition tables for appointment mappings and sessions, and the gate
that decides whether a session may be created for an appointment.
No I/O: the current and target statuses arrive in the context.
"""

from typing import Any, Dict, FrozenSet, Mapping

from core.domain import PolicyDecision, PolicyEngine, PolicyResult
from shared.statuses import MappingStatus, SessionStatus

# =============================================================================
# TRANSITION TABLES
# =============================================================================

MAPPING_TRANSITIONS: Mapping[MappingStatus, FrozenSet[MappingStatus]] = {
    MappingStatus.PENDING: frozenset({MappingStatus.CONFIRMED, MappingStatus.CANCELLED}),
    MappingStatus.CONFIRMED: frozenset({MappingStatus.SESSION_READY, MappingStatus.CANCELLED}),
    MappingStatus.SESSION_READY: frozenset({MappingStatus.COMPLETED, MappingStatus.CANCELLED}),
    MappingStatus.COMPLETED: frozenset(),
    MappingStatus.CANCELLED: frozenset(),
}

SESSION_TRANSITIONS: Mapping[SessionStatus, FrozenSet[SessionStatus]] = {
    SessionStatus.SCHEDULED: frozenset({SessionStatus.STARTED, SessionStatus.CANCELLED, SessionStatus.NO_SHOW}),
    SessionStatus.STARTED: frozenset({
        SessionStatus.IN_PROGRESS,
        SessionStatus.COMPLETED,
        SessionStatus.CANCELLED,
        SessionStatus.NO_SHOW,
    }),
    SessionStatus.IN_PROGRESS: frozenset({SessionStatus.COMPLETED, SessionStatus.CANCELLED}),
    SessionStatus.COMPLETED: frozenset(),
    SessionStatus.CANCELLED: frozenset(),
    SessionStatus.NO_SHOW: frozenset(),
}

# Mapping statuses in which a session may be created
SESSION_CREATION_STATUSES = frozenset({MappingStatus.CONFIRMED, MappingStatus.SESSION_READY})


# =============================================================================
# POLICIES
# =============================================================================

class TransitionPolicy(PolicyEngine):
    """
    Checks a status change against a transition table.

    Context required:
        - current: current status
        - target: requested status
    """

    def __init__(self, table: Mapping[Any, FrozenSet[Any]], entity: str):
        self.table = table
        self.entity = entity

    def allowed_targets(self, current) -> FrozenSet[Any]:
        return self.table.get(current, frozenset())

    def evaluate(self, context: Dict[str, Any]) -> PolicyDecision:
        current = context["current"]
        target = context["target"]
        metadata = {"current": current.value, "target": target.value}

        if target in self.allowed_targets(current):
            return PolicyDecision(
                result=PolicyResult.APPROVED,
                reason=f"{self.entity} may move from {current.value} to {target.value}",
                metadata=metadata,
            )

        allowed = sorted(status.value for status in self.allowed_targets(current))
        if allowed:
            reason = f"{self.entity} cannot move from {current.value} to {target.value} (allowed: {', '.join(allowed)})"
        else:
            reason = f"{self.entity} is {current.value}, which is terminal"
        return PolicyDecision(
            result=PolicyResult.DENIED,
            reason=reason,
            metadata={**metadata, "allowed": allowed},
        )


class MappingTransitionPolicy(TransitionPolicy):
    def __init__(self):
        super().__init__(MAPPING_TRANSITIONS, "Appointment mapping")


class SessionTransitionPolicy(TransitionPolicy):
    def __init__(self):
        super().__init__(SESSION_TRANSITIONS, "Session")


class SessionCreationPolicy(PolicyEngine):
    """
    Gate for session creation.

    Context required:
        - mapping_status: status of the appointment's mapping, or None if no mapping exists
    """

    def evaluate(self, context: Dict[str, Any]) -> PolicyDecision:
        status = context.get("mapping_status")

        if status is None:
            return PolicyDecision(
                result=PolicyResult.DENIED,
                reason="No appointment mapping exists yet",
                metadata={"mapping_status": None},
            )

        if status not in SESSION_CREATION_STATUSES:
            return PolicyDecision(
                result=PolicyResult.DENIED,
                reason=f"Appointment mapping is {status.value}; a session needs it CONFIRMED",
                metadata={"mapping_status": status.value},
            )

        return PolicyDecision(
            result=PolicyResult.APPROVED,
            reason="Appointment mapping is confirmed",
            metadata={"mapping_status": status.value},
        )
