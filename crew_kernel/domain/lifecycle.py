"""
Shift lifecycle domain types (``crew_kernel.domain.lifecycle``).

Responsibility
--------------
Pure definition of the shift and assignment state machines: the states,
the only legal transitions, and the helpers that reject anything else.

Architecture position
---------------------
**Kernel domain layer** -- pure.  ZERO I/O.  The lifecycle service loads
rows, asks this module whether a move is legal, and persists the result.

Invariants enforced
-------------------
* ``SHIFT_TRANSITIONS`` is the only source of legal shift moves.  COMPLETED
  and CANCELLED have no outgoing edges.
* A shift with zero checked-in workers never leaves ASSIGNED: CHECKED_IN is
  only reachable by a worker check-in.
* DISPUTED freezes the shift.  The only exits are RESOLVED and REJECTED,
  which immediately hand control back to the state the shift was in when
  the first dispute was opened.
* Worker confirmation is per assignment: ``ASSIGNMENT_TRANSITIONS`` moves
  one assignment CHECKED_IN -> COMPLETED independently of the others.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum

from crew_kernel.exceptions import InvalidTransitionError


class ShiftState(str, Enum):
    """Shift lifecycle states."""

    OPEN = "open"
    ASSIGNED = "assigned"
    CHECKED_IN = "checked_in"
    AWAITING_CLIENT_COMPLETE = "awaiting_client_complete"
    AWAITING_WORKER_CONFIRM = "awaiting_worker_confirm"
    AWAITING_RATING = "awaiting_rating"
    COMPLETED = "completed"
    DISPUTED = "disputed"
    RESOLVED = "resolved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


# States a dispute can be opened from and later resumed to
RESUMABLE_SHIFT_STATES: frozenset[ShiftState] = frozenset({
    ShiftState.OPEN,
    ShiftState.ASSIGNED,
    ShiftState.CHECKED_IN,
    ShiftState.AWAITING_CLIENT_COMPLETE,
    ShiftState.AWAITING_WORKER_CONFIRM,
    ShiftState.AWAITING_RATING,
})

SHIFT_TRANSITIONS: dict[ShiftState, frozenset[ShiftState]] = {
    ShiftState.OPEN: frozenset({
        ShiftState.ASSIGNED,
        ShiftState.CANCELLED,
        ShiftState.DISPUTED,
    }),
    ShiftState.ASSIGNED: frozenset({
        ShiftState.CHECKED_IN,
        ShiftState.CANCELLED,
        ShiftState.DISPUTED,
    }),
    ShiftState.CHECKED_IN: frozenset({
        ShiftState.AWAITING_CLIENT_COMPLETE,
        ShiftState.AWAITING_WORKER_CONFIRM,
        ShiftState.DISPUTED,
    }),
    ShiftState.AWAITING_CLIENT_COMPLETE: frozenset({
        ShiftState.AWAITING_WORKER_CONFIRM,
        ShiftState.DISPUTED,
    }),
    ShiftState.AWAITING_WORKER_CONFIRM: frozenset({
        ShiftState.AWAITING_RATING,
        ShiftState.DISPUTED,
    }),
    ShiftState.AWAITING_RATING: frozenset({
        ShiftState.COMPLETED,
        ShiftState.DISPUTED,
    }),
    ShiftState.DISPUTED: frozenset({
        ShiftState.RESOLVED,
        ShiftState.REJECTED,
    }),
    ShiftState.RESOLVED: RESUMABLE_SHIFT_STATES,
    ShiftState.REJECTED: RESUMABLE_SHIFT_STATES,
    ShiftState.COMPLETED: frozenset(),
    ShiftState.CANCELLED: frozenset(),
}

TERMINAL_SHIFT_STATES: frozenset[ShiftState] = frozenset({
    ShiftState.COMPLETED,
    ShiftState.CANCELLED,
})

# Ratings may be submitted while the shift is in one of these states
RATING_SHIFT_STATES: frozenset[ShiftState] = frozenset({
    ShiftState.AWAITING_WORKER_CONFIRM,
    ShiftState.AWAITING_RATING,
    ShiftState.COMPLETED,
})


class AssignmentState(str, Enum):
    """Per-worker assignment states."""

    ASSIGNED = "assigned"
    ON_WAY = "on_way"
    CHECKED_IN = "checked_in"
    COMPLETED = "completed"
    NO_SHOW = "no_show"
    CANCELLED = "cancelled"


ASSIGNMENT_TRANSITIONS: dict[AssignmentState, frozenset[AssignmentState]] = {
    AssignmentState.ASSIGNED: frozenset({
        AssignmentState.ON_WAY,
        AssignmentState.CHECKED_IN,
        AssignmentState.NO_SHOW,
        AssignmentState.CANCELLED,
    }),
    AssignmentState.ON_WAY: frozenset({
        AssignmentState.CHECKED_IN,
        AssignmentState.NO_SHOW,
        AssignmentState.CANCELLED,
    }),
    AssignmentState.CHECKED_IN: frozenset({AssignmentState.COMPLETED}),
    AssignmentState.COMPLETED: frozenset(),
    AssignmentState.NO_SHOW: frozenset(),
    AssignmentState.CANCELLED: frozenset(),
}

# Assignments that count against required_workers
ACTIVE_ASSIGNMENT_STATES: frozenset[AssignmentState] = frozenset({
    AssignmentState.ASSIGNED,
    AssignmentState.ON_WAY,
    AssignmentState.CHECKED_IN,
    AssignmentState.COMPLETED,
})


def require_shift_transition(
    shift_id: object,
    current: ShiftState,
    target: ShiftState,
    command: str,
) -> None:
    """Raise InvalidTransitionError unless ``current -> target`` is legal."""
    if target not in SHIFT_TRANSITIONS[current]:
        raise InvalidTransitionError(
            str(shift_id),
            current.value,
            command,
            f"no transition to '{target.value}'",
        )


def require_shift_state(
    shift_id: object,
    current: ShiftState,
    allowed: frozenset[ShiftState] | set[ShiftState],
    command: str,
) -> None:
    """Raise InvalidTransitionError unless the shift is in one of ``allowed``."""
    if current not in allowed:
        raise InvalidTransitionError(
            str(shift_id),
            current.value,
            command,
            "expected one of " + ", ".join(sorted(s.value for s in allowed)),
        )


def require_assignment_transition(
    assignment_id: object,
    current: AssignmentState,
    target: AssignmentState,
    command: str,
) -> None:
    """Raise InvalidTransitionError unless the assignment move is legal."""
    if target not in ASSIGNMENT_TRANSITIONS[current]:
        raise InvalidTransitionError(
            str(assignment_id),
            current.value,
            command,
            f"no transition to '{target.value}'",
        )


def check_in_window(
    scheduled_start: datetime,
    scheduled_end: datetime,
    grace: timedelta,
) -> tuple[datetime, datetime]:
    """The interval in which check-in evidence is accepted."""
    return scheduled_start - grace, scheduled_end + grace
