"""
Application status transitions.

    applied -> under_review -> shortlisted -> interview_scheduled
            -> interviewed -> offered -> offer_accepted -> hired

Forward moves may skip stages. `rejected` and `withdrawn` are reachable from
every non-terminal state. Terminal states (hired, rejected, withdrawn)
accept nothing, and writing the current status again is not a transition.
"""

from datetime import datetime
from typing import Optional, List, Iterable

from bson import ObjectId

from placement_portal.core.errors import ConflictError, ValidationError
from placement_portal.utils.timeutils import utcnow

PIPELINE = (
    "applied",
    "under_review",
    "shortlisted",
    "interview_scheduled",
    "interviewed",
    "offered",
    "offer_accepted",
    "hired",
)

EXITS = ("rejected", "withdrawn")

TERMINAL_STATES = frozenset({"hired", "rejected", "withdrawn"})

ALL_STATES = frozenset(PIPELINE) | frozenset(EXITS)

# Creation states: a student apply or a company shortlist
INITIAL_STATES = frozenset({"applied", "shortlisted"})


def rank(status: str) -> int:
    """Position in the partial order; exits rank after every pipeline stage."""
    if status in EXITS:
        return len(PIPELINE)
    return PIPELINE.index(status)


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATES


def can_transition(current: str, target: str) -> bool:
    if current not in ALL_STATES or target not in ALL_STATES:
        return False
    if is_terminal(current) or current == target:
        return False
    if target in EXITS:
        return True
    return rank(target) > rank(current)


def validate_transition(current: str, target: str) -> None:
    """Raise the error a client should see for a refused transition."""
    if target not in ALL_STATES:
        raise ValidationError(f"Unknown application status: {target}")
    if is_terminal(current):
        raise ConflictError(f"Application is already {current} and cannot be changed", field="status")
    if current == target:
        raise ConflictError(f"Application is already {current}", field="status")
    if not can_transition(current, target):
        raise ValidationError(f"Cannot move application from {current} to {target}")


def history_entry(status: str, changed_by: Optional[ObjectId], remarks: Optional[str] = None,
                  changed_at: Optional[datetime] = None) -> dict:
    return {
        "status": status,
        "changed_at": changed_at or utcnow(),
        "changed_by": changed_by,
        "remarks": remarks,
    }


def is_monotonic(history: Iterable[dict]) -> bool:
    """True if every recorded status is a legal successor of the one before it."""
    statuses: List[str] = [entry["status"] for entry in history]
    if not statuses:
        return True
    if statuses[0] not in INITIAL_STATES:
        return False
    return all(can_transition(a, b) for a, b in zip(statuses, statuses[1:]))
