"""
Value objects for commands entering the kernel.

Pure, frozen dataclasses.  ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class ActorRole(str, Enum):
    """Who is issuing a command."""

    CLIENT = "client"
    WORKER = "worker"
    ADMIN = "admin"
    SYSTEM = "system"


@dataclass(frozen=True)
class Actor:
    """The caller of a command: a user id plus the role it acts in."""

    user_id: UUID
    role: ActorRole

    @classmethod
    def client(cls, user_id: UUID) -> Actor:
        return cls(user_id, ActorRole.CLIENT)

    @classmethod
    def worker(cls, user_id: UUID) -> Actor:
        return cls(user_id, ActorRole.WORKER)

    @classmethod
    def admin(cls, user_id: UUID) -> Actor:
        return cls(user_id, ActorRole.ADMIN)

    @classmethod
    def system(cls) -> Actor:
        return cls(SYSTEM_ACTOR_ID, ActorRole.SYSTEM)


# Stable id recorded in status logs for scheduler-driven transitions
SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000000")


@dataclass(frozen=True)
class ShiftTerms:
    """What a client posts: the work, the schedule and the money."""

    title: str
    category: str
    location: str
    scheduled_start: datetime
    scheduled_end: datetime
    required_workers: int
    pay_rate: Decimal
    commission_percent: Decimal | None = None


@dataclass(frozen=True)
class CheckInEvidence:
    """
    Opaque proof that a worker arrived.

    The kernel checks only that the timestamp falls inside the shift window
    and that the coordinates are on the globe; geofencing and photo
    verification happen elsewhere.
    """

    timestamp: datetime
    latitude: float
    longitude: float
    photo_ref: str
