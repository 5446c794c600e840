"""
Module: crew_kernel.models.worker_profile
Responsibility: the ban-relevant slice of a worker's profile.

Only the fields the settlement workflow reads or writes live here; the rest
of a user's profile belongs to the account system.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from crew_kernel.db.base import Base, UTCDateTime, UUIDString
from crew_kernel.domain.dtos import WorkerProfileRecord


class ProfileStatus(str, Enum):
    ACTIVE = "active"
    BANNED = "banned"


class WorkerProfileModel(Base):
    """
    Ban state for one user.  Created on first ban if absent.

    ``ban_until`` of NULL with status banned means a permanent ban.
    """

    __tablename__ = "worker_profiles"

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'banned')",
            name="ck_worker_profiles_valid_status",
        ),
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=ProfileStatus.ACTIVE.value,
    )
    ban_until: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    ban_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    banned_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<WorkerProfile {self.user_id} {self.status} until={self.ban_until}>"

    def to_dto(self) -> WorkerProfileRecord:
        return WorkerProfileRecord(
            user_id=self.user_id,
            status=self.status,
            ban_until=self.ban_until,
            ban_reason=self.ban_reason,
        )
