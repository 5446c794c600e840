"""
ORM-level immutability enforcement for the settlement ledger.

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  We register listeners that check the ledger's append-only rules:

    session.flush()
         |
         v
    [before_update] --> _check_*_update() --> ImmutabilityViolationError
         |
         v
    [before_delete] --> _reject_delete() ---> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

A failed check aborts the flush; the caller's session_scope rolls back.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity            | Update                            | Delete
------------------|-----------------------------------|--------
Rating            | never                             | never
ShiftStatusLog    | never                             | never
TrustEvent        | never                             | never
EscrowHold        | not once released / refunded      | never
Dispute           | not once resolved / rejected      | never
Shift             | allowed (lifecycle service)       | never
Assignment        | allowed (lifecycle service)       | never

"Was terminal" is read from attribute history, so the transition INTO a
terminal status is allowed and everything after it is blocked.

===============================================================================
USAGE
===============================================================================

    from crew_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # create_tables() does this

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from crew_kernel.exceptions import ImmutabilityViolationError
from crew_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_TERMINAL_HOLD_STATUSES = frozenset({"released", "refunded"})
_TERMINAL_DISPUTE_STATUSES = frozenset({"resolved", "rejected"})


def _blocked(entity_type: str, target, operation: str, reason: str) -> ImmutabilityViolationError:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _was_status_in(target, terminal: frozenset[str]) -> bool:
    """
    True if the row was already in a terminal status before this flush.

    status changing: look at the old value.
    status unchanged: look at the current value.
    """
    history = get_history(target, "status")
    if history.deleted:
        return str(history.deleted[0]) in terminal
    if not history.added:
        return str(target.status) in terminal
    return False


def _changed_fields(target) -> list[str]:
    return [
        attr.key
        for attr in inspect(target).attrs
        if attr.key != "version" and attr.history.has_changes()
    ]


def _check_rating_update(mapper, connection, target):
    raise _blocked("Rating", target, "UPDATE", "Ratings are immutable after creation")


def _check_status_log_update(mapper, connection, target):
    raise _blocked(
        "ShiftStatusLog", target, "UPDATE", "Status log rows are append-only"
    )


def _check_trust_event_update(mapper, connection, target):
    raise _blocked("TrustEvent", target, "UPDATE", "Trust events are append-only")


def _check_escrow_hold_update(mapper, connection, target):
    if not _was_status_in(target, _TERMINAL_HOLD_STATUSES):
        return
    changed = _changed_fields(target)
    if changed:
        raise _blocked(
            "EscrowHold",
            target,
            "UPDATE",
            f"Cannot modify {', '.join(changed)} on a settled escrow hold",
        )


def _check_dispute_update(mapper, connection, target):
    if not _was_status_in(target, _TERMINAL_DISPUTE_STATUSES):
        return
    changed = _changed_fields(target)
    if changed:
        raise _blocked(
            "Dispute",
            target,
            "UPDATE",
            f"Cannot modify {', '.join(changed)} on a closed dispute",
        )


def _reject_delete(mapper, connection, target):
    entity_type = type(target).__name__.removesuffix("Model")
    raise _blocked(entity_type, target, "DELETE", f"{entity_type} rows are never deleted")


def _listeners():
    from crew_kernel.models import (
        AssignmentModel,
        DisputeModel,
        EscrowHoldModel,
        RatingModel,
        ShiftModel,
        ShiftStatusLogModel,
        TrustEventModel,
    )

    return [
        (RatingModel, "before_update", _check_rating_update),
        (RatingModel, "before_delete", _reject_delete),
        (ShiftStatusLogModel, "before_update", _check_status_log_update),
        (ShiftStatusLogModel, "before_delete", _reject_delete),
        (TrustEventModel, "before_update", _check_trust_event_update),
        (TrustEventModel, "before_delete", _reject_delete),
        (EscrowHoldModel, "before_update", _check_escrow_hold_update),
        (EscrowHoldModel, "before_delete", _reject_delete),
        (DisputeModel, "before_update", _check_dispute_update),
        (DisputeModel, "before_delete", _reject_delete),
        (ShiftModel, "before_delete", _reject_delete),
        (AssignmentModel, "before_delete", _reject_delete),
    ]


def register_immutability_listeners():
    """
    Register all immutability listeners.  Safe to call more than once.

    Call after the models are importable and before any write.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove the immutability listeners.

    WARNING: only for tests that need to write a forbidden row on purpose.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
