"""
Module: crew_kernel.selectors.dispute_selector
Responsibility: Read access to disputes and worker ban state for the
    administrator views.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from crew_kernel.domain.dispute import UNRESOLVED_DISPUTE_STATUSES
from crew_kernel.domain.dtos import DisputeRecord, WorkerProfileRecord
from crew_kernel.models import DisputeModel, WorkerProfileModel
from crew_kernel.selectors.base import BaseSelector


class DisputeSelector(BaseSelector):

    def get_dispute(self, dispute_id: UUID) -> DisputeRecord | None:
        model = self.session.get(DisputeModel, dispute_id)
        return model.to_dto() if model is not None else None

    def list_unresolved(self, shift_id: UUID | None = None) -> list[DisputeRecord]:
        """Open and in-review disputes, oldest first, optionally for one shift."""
        stmt = select(DisputeModel).where(
            DisputeModel.status.in_([s.value for s in UNRESOLVED_DISPUTE_STATUSES])
        )
        if shift_id is not None:
            stmt = stmt.where(DisputeModel.shift_id == shift_id)
        rows = self.session.execute(stmt.order_by(DisputeModel.created_at)).scalars()
        return [row.to_dto() for row in rows]

    def get_worker_profile(self, user_id: UUID) -> WorkerProfileRecord | None:
        model = self.session.execute(
            select(WorkerProfileModel).where(WorkerProfileModel.user_id == user_id)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None
