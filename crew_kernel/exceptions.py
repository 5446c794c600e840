"""
Typed Exception Hierarchy for the Crew Kernel.

===============================================================================
CONVENTIONS
===============================================================================

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE class attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA as attributes (not just a message)

Example:
    try:
        lifecycle.complete_shift(actor, shift_id)
    except ConcurrentModificationError:
        retry()
    except InvalidTransitionError as e:
        api_response(code=e.code, state=e.current_state)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    CrewKernelError (base)
    |
    +-- LifecycleError
    |   +-- ShiftNotFoundError
    |   +-- AssignmentNotFoundError
    |   +-- DuplicateAssignmentError
    |   +-- WorkerBannedError
    |   +-- InvalidShiftTermsError
    |   +-- InvalidEvidenceError
    |   +-- InvalidTransitionError
    |       +-- UnauthorizedActorError
    |       +-- CheckInWindowError
    |       +-- ShiftFullError
    |       +-- CancellationRequiresDisputeError
    |
    +-- ConcurrencyError
    |   +-- ConcurrentModificationError
    |
    +-- RatingError
    |   +-- DuplicateRatingError
    |   +-- RatingOutOfRangeError
    |   +-- RatingNotAllowedError
    |
    +-- DisputeError
    |   +-- DisputeNotFoundError
    |   +-- DisputeAlreadyResolvedError
    |   +-- MissingResolutionTextError
    |   +-- InvalidDisputeReasonError
    |   +-- DuplicateOpenDisputeError
    |   +-- AppealWindowClosedError
    |   +-- InvalidDisputeError
    |
    +-- EscrowError
    |   +-- EscrowNotFoundError
    |   +-- InvalidEscrowTransitionError
    |   +-- EscrowInconsistencyError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                            | When Raised
-------------|---------------------------------|----------------------------------
Lifecycle    | SHIFT_NOT_FOUND                 | Shift ID doesn't exist
             | ASSIGNMENT_NOT_FOUND            | Assignment ID doesn't exist
             | DUPLICATE_ASSIGNMENT            | Worker already on the shift
             | WORKER_BANNED                   | Worker profile is banned
             | INVALID_SHIFT_TERMS             | Rate/count/window rejected
             | INVALID_EVIDENCE                | Check-in evidence malformed
             | INVALID_TRANSITION              | State does not allow the command
             | UNAUTHORIZED_ACTOR              | Role/ownership mismatch
             | CHECK_IN_WINDOW                 | Evidence outside shift window
             | SHIFT_FULL                      | Required worker count reached
             | CANCELLATION_REQUIRES_DISPUTE   | Funds held, cancel via dispute
-------------|---------------------------------|----------------------------------
Concurrency  | CONCURRENT_MODIFICATION         | Optimistic lock lost (retry)
-------------|---------------------------------|----------------------------------
Rating       | DUPLICATE_RATING                | (shift, from, to) already rated
             | RATING_OUT_OF_RANGE             | Value outside [1, 5]
             | RATING_NOT_ALLOWED              | Parties/state cannot rate
-------------|---------------------------------|----------------------------------
Dispute      | DISPUTE_NOT_FOUND               | Dispute ID doesn't exist
             | DISPUTE_ALREADY_RESOLVED        | Dispute already closed
             | MISSING_RESOLUTION_TEXT         | Empty resolution text
             | INVALID_DISPUTE_REASON          | Reason not in the fixed set
             | DUPLICATE_OPEN_DISPUTE          | Same triple already open
             | APPEAL_WINDOW_CLOSED            | Shift settled too long ago
             | INVALID_DISPUTE                 | Parties/description rejected
-------------|---------------------------------|----------------------------------
Escrow       | ESCROW_NOT_FOUND                | Shift has no hold
             | INVALID_ESCROW_TRANSITION       | Backward/terminal hold move
             | ESCROW_INCONSISTENCY            | total != components (BUG)
-------------|---------------------------------|----------------------------------
Immutability | IMMUTABILITY_VIOLATION          | Modifying an immutable record

===============================================================================
HANDLING PATTERNS
===============================================================================

ConcurrencyError -> auto-retry with a fresh session.
LifecycleError / RatingError / DisputeError -> report to caller, nothing
    was applied.
EscrowInconsistencyError -> bug report; the transaction is rolled back
    and nothing is "corrected".
"""


class CrewKernelError(Exception):
    """
    Base exception for all crew kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "CREW_KERNEL_ERROR"


# Lifecycle exceptions


class LifecycleError(CrewKernelError):
    """Base exception for shift lifecycle errors."""

    code: str = "LIFECYCLE_ERROR"


class ShiftNotFoundError(LifecycleError):
    """Shift with given ID was not found."""

    code: str = "SHIFT_NOT_FOUND"

    def __init__(self, shift_id: str):
        self.shift_id = shift_id
        super().__init__(f"Shift not found: {shift_id}")


class AssignmentNotFoundError(LifecycleError):
    """Assignment with given ID was not found."""

    code: str = "ASSIGNMENT_NOT_FOUND"

    def __init__(self, assignment_id: str):
        self.assignment_id = assignment_id
        super().__init__(f"Assignment not found: {assignment_id}")


class DuplicateAssignmentError(LifecycleError):
    """Worker already holds an active assignment on the shift."""

    code: str = "DUPLICATE_ASSIGNMENT"

    def __init__(self, shift_id: str, worker_id: str):
        self.shift_id = shift_id
        self.worker_id = worker_id
        super().__init__(
            f"Worker {worker_id} is already assigned to shift {shift_id}"
        )


class WorkerBannedError(LifecycleError):
    """Worker profile is banned and cannot take shifts."""

    code: str = "WORKER_BANNED"

    def __init__(self, worker_id: str, ban_until: str | None):
        self.worker_id = worker_id
        self.ban_until = ban_until
        until = ban_until or "permanently"
        super().__init__(f"Worker {worker_id} is banned until {until}")


class InvalidShiftTermsError(LifecycleError):
    """Shift terms violate posting rules (rate, count, schedule)."""

    code: str = "INVALID_SHIFT_TERMS"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid shift terms ({field}): {reason}")


class InvalidEvidenceError(LifecycleError):
    """Check-in evidence is malformed."""

    code: str = "INVALID_EVIDENCE"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid check-in evidence: {reason}")


class InvalidTransitionError(LifecycleError):
    """Command is not allowed in the entity's current state."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        entity_id: str,
        current_state: str,
        command: str,
        reason: str = "",
    ):
        self.entity_id = entity_id
        self.current_state = current_state
        self.command = command
        self.reason = reason
        message = f"Cannot {command} {entity_id} in state '{current_state}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class UnauthorizedActorError(InvalidTransitionError):
    """Actor's role or ownership does not permit the command."""

    code: str = "UNAUTHORIZED_ACTOR"

    def __init__(self, entity_id: str, current_state: str, command: str, actor_id: str, role: str):
        self.actor_id = actor_id
        self.role = role
        super().__init__(
            entity_id,
            current_state,
            command,
            f"actor {actor_id} ({role}) is not permitted",
        )


class CheckInWindowError(InvalidTransitionError):
    """Check-in evidence timestamp falls outside the shift window."""

    code: str = "CHECK_IN_WINDOW"

    def __init__(self, assignment_id: str, current_state: str, evidence_at: str, opens_at: str, closes_at: str):
        self.evidence_at = evidence_at
        self.opens_at = opens_at
        self.closes_at = closes_at
        super().__init__(
            assignment_id,
            current_state,
            "check_in",
            f"evidence at {evidence_at} outside window {opens_at} .. {closes_at}",
        )


class ShiftFullError(InvalidTransitionError):
    """Shift already has its required number of workers."""

    code: str = "SHIFT_FULL"

    def __init__(self, shift_id: str, current_state: str, required_workers: int):
        self.required_workers = required_workers
        super().__init__(
            shift_id,
            current_state,
            "approve_application",
            f"all {required_workers} positions are filled",
        )


class CancellationRequiresDisputeError(InvalidTransitionError):
    """Funds are held; cancellation must go through the dispute path."""

    code: str = "CANCELLATION_REQUIRES_DISPUTE"

    def __init__(self, shift_id: str, current_state: str, hold_status: str):
        self.hold_status = hold_status
        super().__init__(
            shift_id,
            current_state,
            "cancel_shift",
            f"escrow is '{hold_status}', open a dispute to refund",
        )


# Concurrency exceptions


class ConcurrencyError(CrewKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentModificationError(ConcurrencyError):
    """Optimistic locking conflict detected. Caller should retry."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Rating exceptions


class RatingError(CrewKernelError):
    """Base exception for rating errors."""

    code: str = "RATING_ERROR"


class DuplicateRatingError(RatingError):
    """A rating already exists for (shift, from_user, to_user)."""

    code: str = "DUPLICATE_RATING"

    def __init__(self, shift_id: str, from_user_id: str, to_user_id: str):
        self.shift_id = shift_id
        self.from_user_id = from_user_id
        self.to_user_id = to_user_id
        super().__init__(
            f"User {from_user_id} already rated {to_user_id} for shift {shift_id}"
        )


class RatingOutOfRangeError(RatingError):
    """Rating value outside the allowed range."""

    code: str = "RATING_OUT_OF_RANGE"

    def __init__(self, value: int, minimum: int = 1, maximum: int = 5):
        self.value = value
        self.minimum = minimum
        self.maximum = maximum
        super().__init__(
            f"Rating {value} outside allowed range [{minimum}, {maximum}]"
        )


class RatingNotAllowedError(RatingError):
    """The two users cannot rate each other for this shift."""

    code: str = "RATING_NOT_ALLOWED"

    def __init__(self, shift_id: str, from_user_id: str, to_user_id: str, reason: str):
        self.shift_id = shift_id
        self.from_user_id = from_user_id
        self.to_user_id = to_user_id
        self.reason = reason
        super().__init__(
            f"Rating from {from_user_id} to {to_user_id} on shift {shift_id} "
            f"not allowed: {reason}"
        )


# Dispute exceptions


class DisputeError(CrewKernelError):
    """Base exception for dispute errors."""

    code: str = "DISPUTE_ERROR"


class DisputeNotFoundError(DisputeError):
    """Dispute with given ID was not found."""

    code: str = "DISPUTE_NOT_FOUND"

    def __init__(self, dispute_id: str):
        self.dispute_id = dispute_id
        super().__init__(f"Dispute not found: {dispute_id}")


class DisputeAlreadyResolvedError(DisputeError):
    """Dispute is already resolved or rejected."""

    code: str = "DISPUTE_ALREADY_RESOLVED"

    def __init__(self, dispute_id: str, status: str):
        self.dispute_id = dispute_id
        self.status = status
        super().__init__(f"Dispute {dispute_id} is already {status}")


class MissingResolutionTextError(DisputeError):
    """Resolution text is required to close a dispute."""

    code: str = "MISSING_RESOLUTION_TEXT"

    def __init__(self, dispute_id: str):
        self.dispute_id = dispute_id
        super().__init__(f"Resolution text is required for dispute {dispute_id}")


class InvalidDisputeReasonError(DisputeError):
    """Dispute reason is not one of the fixed reasons."""

    code: str = "INVALID_DISPUTE_REASON"

    def __init__(self, reason: str, allowed: tuple[str, ...]):
        self.reason = reason
        self.allowed = allowed
        super().__init__(
            f"Invalid dispute reason '{reason}'; expected one of {', '.join(allowed)}"
        )


class DuplicateOpenDisputeError(DisputeError):
    """An unresolved dispute already exists for the same triple."""

    code: str = "DUPLICATE_OPEN_DISPUTE"

    def __init__(self, existing_dispute_id: str | None, shift_id: str | None, created_by: str, against_user: str):
        self.existing_dispute_id = existing_dispute_id
        self.shift_id = shift_id
        self.created_by = created_by
        self.against_user = against_user
        super().__init__(
            f"Dispute {existing_dispute_id or '(concurrent)'} by {created_by} against {against_user} "
            f"on shift {shift_id} is still unresolved"
        )


class AppealWindowClosedError(DisputeError):
    """Shift settled longer ago than the appeal window."""

    code: str = "APPEAL_WINDOW_CLOSED"

    def __init__(self, shift_id: str, completed_at: str, window_closed_at: str):
        self.shift_id = shift_id
        self.completed_at = completed_at
        self.window_closed_at = window_closed_at
        super().__init__(
            f"Shift {shift_id} completed at {completed_at}; "
            f"appeal window closed at {window_closed_at}"
        )


class InvalidDisputeError(DisputeError):
    """Dispute parties or description are not acceptable."""

    code: str = "INVALID_DISPUTE"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid dispute: {reason}")


# Escrow exceptions


class EscrowError(CrewKernelError):
    """Base exception for escrow errors."""

    code: str = "ESCROW_ERROR"


class EscrowNotFoundError(EscrowError):
    """Shift has no escrow hold."""

    code: str = "ESCROW_NOT_FOUND"

    def __init__(self, shift_id: str):
        self.shift_id = shift_id
        super().__init__(f"No escrow hold for shift {shift_id}")


class InvalidEscrowTransitionError(EscrowError):
    """Escrow status may only move forward: pending -> held -> released|refunded."""

    code: str = "INVALID_ESCROW_TRANSITION"

    def __init__(self, hold_id: str, from_status: str, to_status: str):
        self.hold_id = hold_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Escrow hold {hold_id} cannot move from '{from_status}' to '{to_status}'"
        )


class EscrowInconsistencyError(EscrowError):
    """
    Escrow total does not equal the sum of its components.

    This should never occur. It indicates a bug and is logged as such;
    the amounts are never silently corrected.
    """

    code: str = "ESCROW_INCONSISTENCY"

    def __init__(self, shift_id: str, expected_total: str, actual_total: str):
        self.shift_id = shift_id
        self.expected_total = expected_total
        self.actual_total = actual_total
        super().__init__(
            f"Escrow for shift {shift_id}: total {actual_total} != "
            f"components {expected_total}"
        )


# Immutability exceptions


class ImmutabilityError(CrewKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an immutable record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )
