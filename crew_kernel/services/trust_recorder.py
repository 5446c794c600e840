"""
TrustRecorder -- writes trust events for workflow outcomes.

Responsibility:
    Turns a no-show, a late arrival, a lost dispute, a finished shift or a
    good rating into one TrustEvent row whose impact and severity come
    from ``policy.trust_rules``.

Architecture position:
    Kernel > Services.  Called by ShiftLifecycleService and DisputeResolver
    inside the command that produced the outcome, so the event commits or
    rolls back with it.  Adds rows only; the calling command flushes.

Invariants enforced:
    - Trust events are append-only (db/immutability.py).
    - The impact is copied onto the row when it is written.
"""

from __future__ import annotations

from uuid import UUID

from crew_kernel.domain.trust import TrustEventType
from crew_kernel.logging_config import get_logger
from crew_kernel.models import TrustEventModel
from crew_kernel.services.base import BaseService

logger = get_logger("services.trust_recorder")


class TrustRecorder(BaseService):
    """Appends trust events to the caller's unit of work."""

    def record(
        self,
        user_id: UUID,
        event_type: TrustEventType,
        shift_id: UUID | None = None,
        dispute_id: UUID | None = None,
        description: str | None = None,
    ) -> TrustEventModel:
        rule = self.policy.trust_rule(event_type)
        event = TrustEventModel(
            user_id=user_id,
            event_type=event_type.value,
            severity=rule.severity.value,
            impact=rule.impact,
            shift_id=shift_id,
            dispute_id=dispute_id,
            description=description,
            created_at=self.clock.now(),
        )
        self.session.add(event)

        logger.info(
            "trust_event_recorded",
            extra={
                "user_id": str(user_id),
                "event_type": event_type.value,
                "impact": rule.impact,
                "shift_id": str(shift_id) if shift_id else None,
            },
        )
        return event
