"""
Module: crew_kernel.models.rating
Responsibility: ORM persistence for directed ratings and per-user aggregates.

Architecture position: Kernel > Models.  May import from db/ and domain/ only.

Invariants enforced:
    - UNIQUE(shift_id, from_user_id, to_user_id): the insert itself is the
      duplicate check.  Two racing submissions cannot both commit.
    - value BETWEEN 1 AND 5 (DB check constraint).
    - Ratings are append-only (db/immutability.py).
    - UserRatingStatModel is one row per user, version-checked so that two
      concurrent raters cannot both apply their score to the same old row.

Failure modes:
    - IntegrityError on a duplicate rating or a racing first stat insert.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from crew_kernel.db.base import Base, UTCDateTime, UUIDString
from crew_kernel.domain.dtos import RatingRecord, RatingStatRecord
from crew_kernel.domain.rating import RatingTally


class RatingModel(Base):
    """A directed score from one shift participant to another.  Immutable."""

    __tablename__ = "ratings"

    __table_args__ = (
        UniqueConstraint(
            "shift_id", "from_user_id", "to_user_id",
            name="uq_ratings_shift_pair",
        ),
        CheckConstraint("value BETWEEN 1 AND 5", name="ck_ratings_value_range"),
        CheckConstraint("from_user_id <> to_user_id", name="ck_ratings_not_self"),
        Index("ix_ratings_to_user", "to_user_id"),
    )

    shift_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("shifts.id"), nullable=False,
    )
    from_user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    to_user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    value: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<Rating {self.value} shift={self.shift_id} "
            f"{self.from_user_id}->{self.to_user_id}>"
        )

    def to_dto(self) -> RatingRecord:
        return RatingRecord(
            id=self.id,
            shift_id=self.shift_id,
            from_user_id=self.from_user_id,
            to_user_id=self.to_user_id,
            value=self.value,
            comment=self.comment,
            created_at=self.created_at,
        )


class UserRatingStatModel(Base):
    """
    Running rating aggregate for one user.

    Contract:
        Mutated only by RatingAggregator.  ``average`` always equals
        ``score_total / rating_count`` at 4 decimal places.
    """

    __tablename__ = "user_rating_stats"

    __table_args__ = (
        CheckConstraint("rating_count >= 0", name="ck_user_rating_stats_count"),
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, unique=True)
    average: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False)
    rating_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    score_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def tally(self) -> RatingTally:
        return RatingTally(count=self.rating_count, score_total=self.score_total)

    def __repr__(self) -> str:
        return f"<UserRatingStat {self.user_id} avg={self.average} n={self.rating_count}>"

    def to_dto(self) -> RatingStatRecord:
        return RatingStatRecord(
            user_id=self.user_id,
            average=self.average,
            count=self.rating_count,
            score_total=self.score_total,
        )
