"""
Module: crew_kernel.selectors.trust_selector
Responsibility: Read access to trust events and the score derived from them.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select

from crew_kernel.domain.dtos import TrustEventRecord, TrustScoreRecord
from crew_kernel.domain.trust import trust_score, trust_status
from crew_kernel.models import TrustEventModel
from crew_kernel.selectors.base import BaseSelector


class TrustSelector(BaseSelector):

    def events_for(self, user_id: UUID, since: datetime | None = None) -> list[TrustEventRecord]:
        stmt = select(TrustEventModel).where(TrustEventModel.user_id == user_id)
        if since is not None:
            stmt = stmt.where(TrustEventModel.created_at > since)
        rows = self.session.execute(stmt.order_by(TrustEventModel.created_at)).scalars()
        return [row.to_dto() for row in rows]

    def score(self, user_id: UUID, since: datetime | None = None) -> TrustScoreRecord:
        """Score over events after ``since`` (all events when None)."""
        events = self.events_for(user_id, since)
        score = trust_score(e.impact for e in events)
        return TrustScoreRecord(
            user_id=user_id,
            score=score,
            status=trust_status(score),
            event_count=len(events),
            since=since,
        )
