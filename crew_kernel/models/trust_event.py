"""
Module: crew_kernel.models.trust_event
Responsibility: append-only log of reliability events per user.

Invariants enforced:
    - event_type / severity limited to the trust enums.
    - ``impact`` is copied from the policy table at write time, so a later
      policy change never rewrites history.
    - Rows are never updated or deleted (db/immutability.py).
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from crew_kernel.db.base import Base, UTCDateTime, UUIDString
from crew_kernel.domain.dtos import TrustEventRecord
from crew_kernel.domain.trust import TrustEventType, TrustSeverity


class TrustEventModel(Base):
    """One sanction or credit against a user's trust score.  Immutable."""

    __tablename__ = "trust_events"

    __table_args__ = (
        CheckConstraint(
            "event_type IN ('no_show', 'late_arrival', 'dispute_lost_client', "
            "'dispute_lost_worker', 'completed_shift_client', "
            "'completed_shift_worker', 'positive_rating')",
            name="ck_trust_events_valid_type",
        ),
        CheckConstraint(
            "severity IN ('low', 'medium', 'high')",
            name="ck_trust_events_valid_severity",
        ),
        Index("ix_trust_events_user_created", "user_id", "created_at"),
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    event_type: Mapped[str] = mapped_column(String(32), nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False)
    impact: Mapped[int] = mapped_column(Integer, nullable=False)
    shift_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("shifts.id"), nullable=True,
    )
    dispute_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("disputes.id"), nullable=True,
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return f"<TrustEvent {self.event_type} user={self.user_id} impact={self.impact}>"

    def to_dto(self) -> TrustEventRecord:
        return TrustEventRecord(
            id=self.id,
            user_id=self.user_id,
            event_type=TrustEventType(self.event_type),
            severity=TrustSeverity(self.severity),
            impact=self.impact,
            shift_id=self.shift_id,
            dispute_id=self.dispute_id,
            description=self.description,
            created_at=self.created_at,
        )
