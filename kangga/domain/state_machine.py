"""
Job lifecycle state machine (State Pattern).

Rides:       requested -> accepted -> in_progress -> completed
Deliveries:  requested -> assigned -> picked_up -> (in_transit) -> delivered

``cancelled`` is reachable from every non-terminal state.  This module is
the single authority on legality; every status write in the service layer
calls :func:`ensure_transition` before touching the database.
"""

from __future__ import annotations

from .enums import TRANSITIONS, JobKind, JobStatus
from .exceptions import InvalidStateTransition


def allowed_next(kind: JobKind | str, current: JobStatus | str) -> set[JobStatus]:
    table = TRANSITIONS[JobKind(kind)]
    try:
        return table[JobStatus(current)]
    except (KeyError, ValueError):
        return set()


def can_transition(
    kind: JobKind | str, current: JobStatus | str, new: JobStatus | str
) -> bool:
    try:
        target = JobStatus(new)
    except ValueError:
        return False
    return target in allowed_next(kind, current)


def ensure_transition(
    kind: JobKind | str, current: JobStatus | str, new: JobStatus | str
) -> None:
    """Raise :class:`InvalidStateTransition` unless *current* -> *new* is legal."""
    if not can_transition(kind, current, new):
        raise InvalidStateTransition(
            f"Cannot transition {JobKind(kind).value} "
            f"from {_label(current)} to {_label(new)}"
        )


def _label(status: JobStatus | str) -> str:
    return getattr(status, "value", status)
