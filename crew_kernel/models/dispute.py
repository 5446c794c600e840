"""
Module: crew_kernel.models.dispute
Responsibility: ORM persistence for disputes.

Architecture position: Kernel > Models.  May import from db/ and domain/ only.

Invariants enforced:
    - status limited to open / in_review / resolved / rejected.
    - resolution and resolved_at are set iff the status is terminal
      (DB check constraint, mirrored by domain.dispute.check_resolution_fields).
    - At most one unresolved dispute per (shift, created_by, against_user):
      partial unique index on PostgreSQL and SQLite.
    - A resolved / rejected dispute is frozen (db/immutability.py).
    - Optimistic concurrency via ``version``.

Failure modes:
    - IntegrityError when two participants race to open the same dispute.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from crew_kernel.db.base import Base, UTCDateTime, UUIDString
from crew_kernel.domain.dispute import DisputeReason, DisputeStatus
from crew_kernel.domain.dtos import DisputeRecord

_UNRESOLVED = "status IN ('open', 'in_review')"


class DisputeModel(Base):
    """
    A challenge to a shift outcome.

    ``shift_id`` is optional: a dispute may outlive, or never have had, a
    live shift.  Closed only by an administrator.
    """

    __tablename__ = "disputes"

    __table_args__ = (
        CheckConstraint(
            "status IN ('open', 'in_review', 'resolved', 'rejected')",
            name="ck_disputes_valid_status",
        ),
        CheckConstraint(
            "reason IN ('no_show', 'late', 'damage', 'quality', 'payment', 'other')",
            name="ck_disputes_valid_reason",
        ),
        CheckConstraint(
            "(status IN ('resolved', 'rejected') "
            "AND resolution IS NOT NULL AND resolved_at IS NOT NULL) "
            "OR (status IN ('open', 'in_review') "
            "AND resolution IS NULL AND resolved_at IS NULL)",
            name="ck_disputes_resolution_metadata",
        ),
        Index(
            "uq_disputes_unresolved_triple",
            "shift_id",
            "created_by",
            "against_user",
            unique=True,
            postgresql_where=text(_UNRESOLVED),
            sqlite_where=text(_UNRESOLVED),
        ),
        Index("ix_disputes_status", "status"),
    )

    shift_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("shifts.id"), nullable=True,
    )
    created_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    against_user: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    reason: Mapped[str] = mapped_column(String(16), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=DisputeStatus.OPEN.value,
    )
    resolution: Mapped[str | None] = mapped_column(Text, nullable=True)
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolved_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    refund_applied: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ban_applied: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def status_enum(self) -> DisputeStatus:
        return DisputeStatus(self.status)

    def __repr__(self) -> str:
        return f"<Dispute {self.id} shift={self.shift_id} {self.reason} {self.status}>"

    def to_dto(self) -> DisputeRecord:
        return DisputeRecord(
            id=self.id,
            shift_id=self.shift_id,
            created_by=self.created_by,
            against_user=self.against_user,
            reason=DisputeReason(self.reason),
            description=self.description,
            status=self.status_enum,
            resolution=self.resolution,
            admin_notes=self.admin_notes,
            resolved_by=self.resolved_by,
            resolved_at=self.resolved_at,
            refund_applied=self.refund_applied,
            ban_applied=self.ban_applied,
            created_at=self.created_at,
            version=self.version,
        )
