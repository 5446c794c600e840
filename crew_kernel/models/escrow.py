"""
Module: crew_kernel.models.escrow
Responsibility: ORM persistence for escrow holds.

Architecture position: Kernel > Models.  May import from db/ and domain/ only.

Invariants enforced:
    - UNIQUE(shift_id): exactly one hold per shift.
    - status limited to pending / held / released / refunded; forward-only
      moves are checked by EscrowService and terminal rows are frozen by
      db/immutability.py.
    - Optimistic concurrency via ``version``.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from crew_kernel.db.base import Base, UTCDateTime, UUIDString
from crew_kernel.domain.dtos import EscrowHoldRecord
from crew_kernel.domain.escrow import EscrowStatus


class EscrowHoldModel(Base):
    """Money locked for one shift.  ``worker_amount`` is per worker."""

    __tablename__ = "escrow_holds"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'held', 'released', 'refunded')",
            name="ck_escrow_holds_valid_status",
        ),
        CheckConstraint("worker_count >= 1", name="ck_escrow_holds_worker_count"),
        CheckConstraint(
            "worker_amount >= 0 AND commission >= 0",
            name="ck_escrow_holds_non_negative",
        ),
    )

    shift_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("shifts.id"), nullable=False, unique=True,
    )
    worker_count: Mapped[int] = mapped_column(Integer, nullable=False)
    worker_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    commission: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=EscrowStatus.PENDING.value,
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    held_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    released_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    refunded_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def status_enum(self) -> EscrowStatus:
        return EscrowStatus(self.status)

    def __repr__(self) -> str:
        return f"<EscrowHold {self.id} shift={self.shift_id} {self.status} total={self.total}>"

    def to_dto(self) -> EscrowHoldRecord:
        return EscrowHoldRecord(
            id=self.id,
            shift_id=self.shift_id,
            worker_count=self.worker_count,
            worker_amount=self.worker_amount,
            commission=self.commission,
            total=self.total,
            status=self.status_enum,
            held_at=self.held_at,
            released_at=self.released_at,
            refunded_at=self.refunded_at,
            version=self.version,
        )
