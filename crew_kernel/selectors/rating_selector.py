"""
Module: crew_kernel.selectors.rating_selector
Responsibility: Read access to ratings and per-user aggregates.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from crew_kernel.domain.dtos import RatingRecord, RatingStatRecord
from crew_kernel.domain.rating import RatingTally
from crew_kernel.models import RatingModel, UserRatingStatModel
from crew_kernel.selectors.base import BaseSelector


class RatingSelector(BaseSelector):

    def get_stat(self, user_id: UUID) -> RatingStatRecord:
        """The user's aggregate; a user never rated has count 0."""
        model = self.session.execute(
            select(UserRatingStatModel).where(UserRatingStatModel.user_id == user_id)
        ).scalar_one_or_none()
        if model is None:
            empty = RatingTally()
            return RatingStatRecord(
                user_id=user_id,
                average=empty.average,
                count=empty.count,
                score_total=empty.score_total,
            )
        return model.to_dto()

    def ratings_for_shift(self, shift_id: UUID) -> list[RatingRecord]:
        rows = self.session.execute(
            select(RatingModel)
            .where(RatingModel.shift_id == shift_id)
            .order_by(RatingModel.created_at)
        ).scalars()
        return [row.to_dto() for row in rows]

    def ratings_received_by(self, user_id: UUID) -> list[RatingRecord]:
        rows = self.session.execute(
            select(RatingModel)
            .where(RatingModel.to_user_id == user_id)
            .order_by(RatingModel.created_at)
        ).scalars()
        return [row.to_dto() for row in rows]
