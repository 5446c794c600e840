"""
Frozen snapshots of ledger rows (``crew_kernel.domain.dtos``).

Services and selectors return these instead of ORM instances so callers
cannot mutate the ledger outside a command.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from crew_kernel.domain.dispute import DisputeReason, DisputeStatus
from crew_kernel.domain.escrow import EscrowStatus
from crew_kernel.domain.lifecycle import AssignmentState, ShiftState
from crew_kernel.domain.trust import TrustEventType, TrustSeverity, TrustStatus


@dataclass(frozen=True)
class ShiftRecord:
    id: UUID
    client_id: UUID
    title: str
    category: str
    location: str
    scheduled_start: datetime
    scheduled_end: datetime
    required_workers: int
    pay_rate: Decimal
    commission_percent: Decimal
    state: ShiftState
    resume_state: ShiftState | None
    assigned_workers: int
    checked_in_workers: int
    checked_out_workers: int
    confirmed_workers: int
    ratings_received: int
    open_disputes: int
    client_completed_at: datetime | None
    awaiting_rating_since: datetime | None
    completed_at: datetime | None
    version: int


@dataclass(frozen=True)
class AssignmentRecord:
    id: UUID
    shift_id: UUID
    worker_id: UUID
    state: AssignmentState
    assigned_at: datetime
    check_in_at: datetime | None
    check_in_latitude: float | None
    check_in_longitude: float | None
    check_in_photo_ref: str | None
    check_out_at: datetime | None
    confirmed_at: datetime | None
    version: int


@dataclass(frozen=True)
class EscrowHoldRecord:
    id: UUID
    shift_id: UUID
    worker_count: int
    worker_amount: Decimal
    commission: Decimal
    total: Decimal
    status: EscrowStatus
    held_at: datetime | None
    released_at: datetime | None
    refunded_at: datetime | None
    version: int


@dataclass(frozen=True)
class RatingRecord:
    id: UUID
    shift_id: UUID
    from_user_id: UUID
    to_user_id: UUID
    value: int
    comment: str | None
    created_at: datetime


@dataclass(frozen=True)
class RatingStatRecord:
    user_id: UUID
    average: Decimal
    count: int
    score_total: int


@dataclass(frozen=True)
class DisputeRecord:
    id: UUID
    shift_id: UUID | None
    created_by: UUID
    against_user: UUID
    reason: DisputeReason
    description: str
    status: DisputeStatus
    resolution: str | None
    admin_notes: str | None
    resolved_by: UUID | None
    resolved_at: datetime | None
    refund_applied: bool
    ban_applied: bool
    created_at: datetime
    version: int


@dataclass(frozen=True)
class WorkerProfileRecord:
    user_id: UUID
    status: str
    ban_until: datetime | None
    ban_reason: str | None

    def is_banned(self, now: datetime) -> bool:
        if self.status != "banned":
            return False
        return self.ban_until is None or self.ban_until > now


@dataclass(frozen=True)
class StatusLogRecord:
    shift_id: UUID
    from_state: ShiftState | None
    to_state: ShiftState
    actor_id: UUID
    actor_role: str
    reason: str
    changed_at: datetime


@dataclass(frozen=True)
class TrustEventRecord:
    id: UUID
    user_id: UUID
    event_type: TrustEventType
    severity: TrustSeverity
    impact: int
    shift_id: UUID | None
    dispute_id: UUID | None
    description: str | None
    created_at: datetime


@dataclass(frozen=True)
class TrustScoreRecord:
    user_id: UUID
    score: int
    status: TrustStatus
    event_count: int
    since: datetime | None


@dataclass(frozen=True)
class RatingSubmission:
    """Result of submit_rating: the rating, the ratee's new aggregate and
    the shift state afterwards (COMPLETED if this rating finalized it)."""

    rating: RatingRecord
    ratee_stat: RatingStatRecord
    shift_state: ShiftState
