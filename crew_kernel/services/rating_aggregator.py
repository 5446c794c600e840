"""
RatingAggregator -- directed ratings and running per-user averages.

Responsibility:
    Inserts one Rating and folds its value into the rated user's
    UserRatingStat in the same transaction.

Architecture position:
    Kernel > Services.  Called by ShiftLifecycleService.submit_rating,
    which decides who may rate whom; this service owns the arithmetic and
    the write-time uniqueness.

Invariants enforced:
    - One rating per (shift, from, to).  An existing rating is reported as
      DuplicateRatingError before the value is range-checked; the unique
      INSERT still decides between two racing submissions.
    - The stat is updated from the current row in the same unit of work:
      ``(score_total + value) / (count + 1)``, O(1), version-checked, so
      two concurrent raters of one user cannot lose an update.
    - Ratings are immutable once written.

Failure modes:
    - DuplicateRatingError on a second rating for the same triple.
    - RatingOutOfRangeError if value is not an integer in [1, 5].
    - ConcurrentModificationError if another rater updated the stat first.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from crew_kernel.domain.clock import Clock
from crew_kernel.domain.dtos import RatingRecord, RatingStatRecord
from crew_kernel.domain.policy import SettlementPolicy
from crew_kernel.domain.rating import RatingTally, apply_rating, validate_rating_value
from crew_kernel.exceptions import (
    ConcurrentModificationError,
    DuplicateRatingError,
    RatingNotAllowedError,
)
from crew_kernel.logging_config import get_logger
from crew_kernel.models import RatingModel, UserRatingStatModel
from crew_kernel.services.base import BaseService
from crew_kernel.services.ledger_store import LedgerStore

logger = get_logger("services.rating_aggregator")


class RatingAggregator(BaseService):
    """Writes ratings and maintains UserRatingStat rows."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: SettlementPolicy | None = None,
        store: LedgerStore | None = None,
    ):
        super().__init__(session, clock, policy)
        self.store = store or LedgerStore(session, self.clock, self.policy)

    def record(
        self,
        shift_id: UUID,
        from_user_id: UUID,
        to_user_id: UUID,
        value: int,
        comment: str | None = None,
    ) -> tuple[RatingRecord, RatingStatRecord]:
        """
        Insert the rating, then update the ratee's aggregate.

        Preconditions:
            The caller has established that ``from_user_id`` may rate
            ``to_user_id`` on this shift.

        Returns:
            The stored rating and the ratee's new aggregate.
        """
        if from_user_id == to_user_id:
            raise RatingNotAllowedError(
                str(shift_id), str(from_user_id), str(to_user_id), "users cannot rate themselves"
            )
        if self.store.rating_exists(shift_id, from_user_id, to_user_id):
            raise DuplicateRatingError(str(shift_id), str(from_user_id), str(to_user_id))
        validate_rating_value(value)
        now = self.clock.now()

        rating = RatingModel(
            shift_id=shift_id,
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            value=value,
            comment=comment,
            created_at=now,
        )
        self.session.add(rating)
        self.store.flush(
            "Rating",
            shift_id,
            on_conflict=lambda: DuplicateRatingError(
                str(shift_id), str(from_user_id), str(to_user_id)
            ),
        )

        stat = self.store.rating_stat(to_user_id)
        if stat is None:
            stat = UserRatingStatModel(
                user_id=to_user_id,
                rating_count=0,
                score_total=0,
                average=RatingTally().average,
                updated_at=now,
            )
            self.session.add(stat)

        tally = apply_rating(stat.tally(), value)
        stat.rating_count = tally.count
        stat.score_total = tally.score_total
        stat.average = tally.average
        stat.updated_at = now
        # A racing first insert for the same user trips UNIQUE(user_id);
        # the retry then finds the row and updates it.
        self.store.flush(
            "UserRatingStat",
            to_user_id,
            on_conflict=lambda: ConcurrentModificationError(
                "UserRatingStat", str(to_user_id)
            ),
        )

        logger.info(
            "rating_recorded",
            extra={
                "rating_id": str(rating.id),
                "from_user_id": str(from_user_id),
                "to_user_id": str(to_user_id),
                "value": value,
                "new_average": str(tally.average),
                "new_count": tally.count,
            },
        )
        return rating.to_dto(), stat.to_dto()

