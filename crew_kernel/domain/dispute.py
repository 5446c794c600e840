"""
Dispute domain types (``crew_kernel.domain.dispute``).

Responsibility
--------------
Pure value objects for administrator-mediated disputes: the fixed reason
set, the status machine, the outcomes an administrator can choose, and
the opt-in ban request bundled with a resolution.

Invariants enforced
-------------------
* ``DISPUTE_TRANSITIONS`` is monotonic: resolved and rejected are terminal
  and a closed dispute never reopens.
* ``resolved_at`` and ``resolution`` are set iff the status is terminal;
  ``check_resolution_fields`` verifies that pairing.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from crew_kernel.exceptions import InvalidDisputeReasonError


class DisputeReason(str, Enum):
    """Why a participant challenges a shift outcome."""

    NO_SHOW = "no_show"
    LATE = "late"
    DAMAGE = "damage"
    QUALITY = "quality"
    PAYMENT = "payment"
    OTHER = "other"


class DisputeStatus(str, Enum):
    """Dispute lifecycle."""

    OPEN = "open"
    IN_REVIEW = "in_review"
    RESOLVED = "resolved"
    REJECTED = "rejected"


DISPUTE_TRANSITIONS: dict[DisputeStatus, frozenset[DisputeStatus]] = {
    DisputeStatus.OPEN: frozenset({
        DisputeStatus.IN_REVIEW,
        DisputeStatus.RESOLVED,
        DisputeStatus.REJECTED,
    }),
    DisputeStatus.IN_REVIEW: frozenset({
        DisputeStatus.RESOLVED,
        DisputeStatus.REJECTED,
    }),
    DisputeStatus.RESOLVED: frozenset(),
    DisputeStatus.REJECTED: frozenset(),
}

UNRESOLVED_DISPUTE_STATUSES: frozenset[DisputeStatus] = frozenset({
    DisputeStatus.OPEN,
    DisputeStatus.IN_REVIEW,
})

TERMINAL_DISPUTE_STATUSES: frozenset[DisputeStatus] = frozenset({
    DisputeStatus.RESOLVED,
    DisputeStatus.REJECTED,
})


class DisputeOutcome(str, Enum):
    """Administrator decision."""

    RESOLVE = "resolve"
    REJECT = "reject"

    @property
    def status(self) -> DisputeStatus:
        if self is DisputeOutcome.RESOLVE:
            return DisputeStatus.RESOLVED
        return DisputeStatus.REJECTED


@dataclass(frozen=True)
class BanRequest:
    """
    Ban bundled with a dispute resolution.

    ``duration`` of None means a permanent ban.
    """

    duration: timedelta | None = None
    reason: str | None = None

    def ban_until(self, now: datetime) -> datetime | None:
        if self.duration is None:
            return None
        return now + self.duration


def parse_reason(reason: str | DisputeReason) -> DisputeReason:
    """Map a raw reason to the fixed enum or raise InvalidDisputeReasonError."""
    if isinstance(reason, DisputeReason):
        return reason
    try:
        return DisputeReason(reason)
    except ValueError:
        raise InvalidDisputeReasonError(
            str(reason), tuple(r.value for r in DisputeReason)
        ) from None


def check_resolution_fields(
    status: DisputeStatus,
    resolution: str | None,
    resolved_at: datetime | None,
) -> bool:
    """True iff resolution metadata is present exactly when the status is terminal."""
    closed = status in TERMINAL_DISPUTE_STATUSES
    has_metadata = resolution is not None and resolved_at is not None
    no_metadata = resolution is None and resolved_at is None
    return has_metadata if closed else no_metadata
