"""
Module: crew_kernel.selectors.shift_selector
Responsibility: Read access to shifts, assignments, escrow holds and the
    shift status log, plus the scheduler's "what is due" queries.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import or_, select

from crew_kernel.domain.dtos import (
    AssignmentRecord,
    EscrowHoldRecord,
    ShiftRecord,
    StatusLogRecord,
)
from crew_kernel.domain.lifecycle import ShiftState
from crew_kernel.models import (
    AssignmentModel,
    EscrowHoldModel,
    ShiftModel,
    ShiftStatusLogModel,
)
from crew_kernel.selectors.base import BaseSelector


class ShiftSelector(BaseSelector):
    """Queries over shifts and everything hanging off them."""

    def get_shift(self, shift_id: UUID) -> ShiftRecord | None:
        model = self.session.get(ShiftModel, shift_id)
        return model.to_dto() if model is not None else None

    def get_assignment(self, assignment_id: UUID) -> AssignmentRecord | None:
        model = self.session.get(AssignmentModel, assignment_id)
        return model.to_dto() if model is not None else None

    def list_assignments(self, shift_id: UUID) -> list[AssignmentRecord]:
        rows = self.session.execute(
            select(AssignmentModel)
            .where(AssignmentModel.shift_id == shift_id)
            .order_by(AssignmentModel.assigned_at)
        ).scalars()
        return [row.to_dto() for row in rows]

    def get_hold(self, shift_id: UUID) -> EscrowHoldRecord | None:
        model = self.session.execute(
            select(EscrowHoldModel).where(EscrowHoldModel.shift_id == shift_id)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def status_history(self, shift_id: UUID) -> list[StatusLogRecord]:
        """Every state change of a shift, oldest first."""
        rows = self.session.execute(
            select(ShiftStatusLogModel)
            .where(ShiftStatusLogModel.shift_id == shift_id)
            .order_by(ShiftStatusLogModel.seq)
        ).scalars()
        return [row.to_dto() for row in rows]

    def due_for_finalization(self, now: datetime, rating_grace: timedelta) -> list[UUID]:
        """AWAITING_RATING shifts with all ratings in or the grace elapsed."""
        cutoff = now - rating_grace
        return list(
            self.session.execute(
                select(ShiftModel.id)
                .where(
                    ShiftModel.state == ShiftState.AWAITING_RATING.value,
                    or_(
                        ShiftModel.ratings_received >= ShiftModel.confirmed_workers * 2,
                        ShiftModel.awaiting_rating_since <= cutoff,
                    ),
                )
                .order_by(ShiftModel.awaiting_rating_since)
            ).scalars()
        )

    def due_for_auto_confirm(self, now: datetime, confirm_grace: timedelta) -> list[UUID]:
        """AWAITING_WORKER_CONFIRM shifts whose confirmation grace elapsed."""
        cutoff = now - confirm_grace
        return list(
            self.session.execute(
                select(ShiftModel.id)
                .where(
                    ShiftModel.state == ShiftState.AWAITING_WORKER_CONFIRM.value,
                    ShiftModel.client_completed_at <= cutoff,
                )
                .order_by(ShiftModel.client_completed_at)
            ).scalars()
        )
