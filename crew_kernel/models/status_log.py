"""
Module: crew_kernel.models.status_log
Responsibility: append-only audit trail of shift state changes.

Invariants enforced:
    - One row per shift state change, written in the same transaction.
    - UNIQUE(shift_id, seq): the per-shift sequence comes from
      ShiftModel.status_log_seq, which is bumped under the shift's version
      check, so sequence numbers never collide or skip.
    - Rows are never updated or deleted (db/immutability.py).
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from crew_kernel.db.base import Base, UTCDateTime, UUIDString
from crew_kernel.domain.dtos import StatusLogRecord
from crew_kernel.domain.lifecycle import ShiftState


class ShiftStatusLogModel(Base):
    """One shift transition."""

    __tablename__ = "shift_status_logs"

    __table_args__ = (
        UniqueConstraint("shift_id", "seq", name="uq_shift_status_logs_seq"),
    )

    shift_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("shifts.id"), nullable=False,
    )
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    from_state: Mapped[str | None] = mapped_column(String(32), nullable=True)
    to_state: Mapped[str] = mapped_column(String(32), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    actor_role: Mapped[str] = mapped_column(String(16), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    changed_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return f"<ShiftStatusLog {self.shift_id}#{self.seq} {self.from_state}->{self.to_state}>"

    def to_dto(self) -> StatusLogRecord:
        return StatusLogRecord(
            shift_id=self.shift_id,
            from_state=ShiftState(self.from_state) if self.from_state else None,
            to_state=ShiftState(self.to_state),
            actor_id=self.actor_id,
            actor_role=self.actor_role,
            reason=self.reason,
            changed_at=self.changed_at,
        )
