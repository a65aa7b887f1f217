"""Allowed session status transitions.

Forward path: pending -> ready -> processing -> done | error.
Recovery edges exist only for the explicit external reset:
error -> pending, and processing -> ready for an attempt that crashed.
"""

from intake.database.models import SessionStatus
from intake.exceptions import InvalidStateError

FORWARD_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.PENDING: frozenset({SessionStatus.READY}),
    SessionStatus.READY: frozenset({SessionStatus.PROCESSING}),
    SessionStatus.PROCESSING: frozenset({SessionStatus.DONE, SessionStatus.ERROR}),
    SessionStatus.DONE: frozenset(),
    SessionStatus.ERROR: frozenset(),
}

RESET_TRANSITIONS: dict[SessionStatus, SessionStatus] = {
    SessionStatus.ERROR: SessionStatus.PENDING,
    SessionStatus.PROCESSING: SessionStatus.READY,
}


def can_transition(current: SessionStatus, target: SessionStatus) -> bool:
    return target in FORWARD_TRANSITIONS[current]


def ensure_transition(current: SessionStatus, target: SessionStatus) -> None:
    """Raise InvalidStateError unless current -> target is a forward edge."""
    if not can_transition(current, target):
        raise InvalidStateError(
            f"Session cannot move from '{current.value}' to '{target.value}'"
        )


def reset_target(current: SessionStatus) -> SessionStatus:
    """Status a session returns to on an explicit external reset."""
    target = RESET_TRANSITIONS.get(current)
    if target is None:
        raise InvalidStateError(f"Session in status '{current.value}' cannot be reset")
    return target
