"""
Module: crew_kernel.models.shift
Responsibility: ORM persistence for shifts and worker assignments.

Architecture position: Kernel > Models.  May import from db/ and domain/ only.

Invariants enforced:
    - required_workers >= 1 (DB check constraint).
    - open_disputes >= 0 (DB check constraint).
    - state / assignment state limited to the lifecycle enums.
    - UNIQUE(shift_id, worker_id): at most one assignment per worker per shift.
    - Optimistic concurrency: ``version`` is the mapper version_id_col on
      both tables; every UPDATE is a compare-and-set.
    - Shifts and assignments are never hard-deleted (db/immutability.py).

Failure modes:
    - IntegrityError on a second assignment for the same (shift, worker).
    - StaleDataError on a lost compare-and-set.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from crew_kernel.db.base import Base, UTCDateTime, UUIDString
from crew_kernel.domain.dtos import AssignmentRecord, ShiftRecord
from crew_kernel.domain.lifecycle import AssignmentState, ShiftState


def _in_clause(column: str, enum_cls) -> str:
    values = ", ".join(f"'{member.value}'" for member in enum_cls)
    return f"{column} IN ({values})"


class ShiftModel(Base):
    """
    A unit of paid work posted by a client.

    Contract:
        Mutated only through ShiftLifecycleService.  ``resume_state`` holds
        the state to return to while the shift is DISPUTED.
        The roster counters (``assigned_workers`` through
        ``ratings_received``) are bumped by every approval, check-in,
        check-out, confirmation and rating, so concurrent writers on one
        shift collide on ``version`` instead of both deciding they were
        not last.
        ``open_disputes`` counts unresolved disputes tied to the shift.  Opening
        and resolving a dispute both write it, so the decision to freeze or
        unfreeze is always made against the latest version of the row.
    """

    __tablename__ = "shifts"

    __table_args__ = (
        CheckConstraint("required_workers >= 1", name="ck_shifts_required_workers"),
        CheckConstraint("open_disputes >= 0", name="ck_shifts_open_disputes"),
        CheckConstraint(_in_clause("state", ShiftState), name="ck_shifts_valid_state"),
        Index("ix_shifts_state", "state"),
        Index("ix_shifts_client", "client_id"),
    )

    client_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    location: Mapped[str] = mapped_column(String(500), nullable=False)
    scheduled_start: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    scheduled_end: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    required_workers: Mapped[int] = mapped_column(Integer, nullable=False)
    pay_rate: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    commission_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    state: Mapped[str] = mapped_column(String(32), nullable=False, default=ShiftState.OPEN.value)
    resume_state: Mapped[str | None] = mapped_column(String(32), nullable=True)
    assigned_workers: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    checked_in_workers: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    checked_out_workers: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    confirmed_workers: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ratings_received: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    open_disputes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status_log_seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    client_completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    awaiting_rating_since: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    assignments: Mapped[list["AssignmentModel"]] = relationship(
        "AssignmentModel",
        back_populates="shift",
        order_by="AssignmentModel.assigned_at",
        lazy="selectin",
    )

    @property
    def state_enum(self) -> ShiftState:
        return ShiftState(self.state)

    @property
    def resume_state_enum(self) -> ShiftState | None:
        return ShiftState(self.resume_state) if self.resume_state else None

    def active_assignments(self) -> list["AssignmentModel"]:
        from crew_kernel.domain.lifecycle import ACTIVE_ASSIGNMENT_STATES

        return [a for a in self.assignments if a.state_enum in ACTIVE_ASSIGNMENT_STATES]

    def __repr__(self) -> str:
        return f"<Shift {self.id} {self.title!r} state={self.state} v{self.version}>"

    def to_dto(self) -> ShiftRecord:
        return ShiftRecord(
            id=self.id,
            client_id=self.client_id,
            title=self.title,
            category=self.category,
            location=self.location,
            scheduled_start=self.scheduled_start,
            scheduled_end=self.scheduled_end,
            required_workers=self.required_workers,
            pay_rate=self.pay_rate,
            commission_percent=self.commission_percent,
            state=self.state_enum,
            resume_state=self.resume_state_enum,
            assigned_workers=self.assigned_workers,
            checked_in_workers=self.checked_in_workers,
            checked_out_workers=self.checked_out_workers,
            confirmed_workers=self.confirmed_workers,
            ratings_received=self.ratings_received,
            open_disputes=self.open_disputes,
            client_completed_at=self.client_completed_at,
            awaiting_rating_since=self.awaiting_rating_since,
            completed_at=self.completed_at,
            version=self.version,
        )


class AssignmentModel(Base):
    """
    One worker bound to one shift.

    Contract:
        Check-in evidence columns are written once, by check_in.
        Confirmation is per assignment (``confirmed_at``).
    """

    __tablename__ = "shift_assignments"

    __table_args__ = (
        UniqueConstraint("shift_id", "worker_id", name="uq_shift_assignments_worker"),
        CheckConstraint(
            _in_clause("state", AssignmentState),
            name="ck_shift_assignments_valid_state",
        ),
        Index("ix_shift_assignments_worker", "worker_id"),
    )

    shift_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("shifts.id"), nullable=False,
    )
    worker_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    state: Mapped[str] = mapped_column(
        String(32), nullable=False, default=AssignmentState.ASSIGNED.value,
    )
    assigned_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    check_in_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    check_in_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    check_in_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    check_in_photo_ref: Mapped[str | None] = mapped_column(String(500), nullable=True)
    check_out_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    shift: Mapped["ShiftModel"] = relationship("ShiftModel", back_populates="assignments")

    @property
    def state_enum(self) -> AssignmentState:
        return AssignmentState(self.state)

    def __repr__(self) -> str:
        return (
            f"<Assignment {self.id} shift={self.shift_id} "
            f"worker={self.worker_id} state={self.state}>"
        )

    def to_dto(self) -> AssignmentRecord:
        return AssignmentRecord(
            id=self.id,
            shift_id=self.shift_id,
            worker_id=self.worker_id,
            state=self.state_enum,
            assigned_at=self.assigned_at,
            check_in_at=self.check_in_at,
            check_in_latitude=self.check_in_latitude,
            check_in_longitude=self.check_in_longitude,
            check_in_photo_ref=self.check_in_photo_ref,
            check_out_at=self.check_out_at,
            confirmed_at=self.confirmed_at,
            version=self.version,
        )
