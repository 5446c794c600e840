"""
Trust events and scores (``crew_kernel.domain.trust``).

Workflow outcomes that say something about a participant's reliability
(a no-show, a late arrival, a lost dispute, a completed shift, a good
rating) are written as trust events.  The impact of each event type comes
from one policy table, so every sanction and credit is decided in one
place.

A user's trust score is ``100 + sum(impacts)`` over a recent window,
clamped to [0, 100].
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

BASE_TRUST_SCORE = 100
MIN_TRUST_SCORE = 0
MAX_TRUST_SCORE = 100


class TrustEventType(str, Enum):
    NO_SHOW = "no_show"
    LATE_ARRIVAL = "late_arrival"
    DISPUTE_LOST_CLIENT = "dispute_lost_client"
    DISPUTE_LOST_WORKER = "dispute_lost_worker"
    COMPLETED_SHIFT_CLIENT = "completed_shift_client"
    COMPLETED_SHIFT_WORKER = "completed_shift_worker"
    POSITIVE_RATING = "positive_rating"


class TrustSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TrustStatus(str, Enum):
    OK = "ok"
    WARNING = "warning"
    RESTRICTED = "restricted"
    BLOCKED = "blocked"


@dataclass(frozen=True)
class TrustRule:
    """Score impact and severity for one event type."""

    impact: int
    severity: TrustSeverity


def default_trust_rules() -> dict[TrustEventType, TrustRule]:
    return {
        TrustEventType.NO_SHOW: TrustRule(-20, TrustSeverity.HIGH),
        TrustEventType.LATE_ARRIVAL: TrustRule(-5, TrustSeverity.LOW),
        TrustEventType.DISPUTE_LOST_CLIENT: TrustRule(-20, TrustSeverity.HIGH),
        TrustEventType.DISPUTE_LOST_WORKER: TrustRule(-15, TrustSeverity.HIGH),
        TrustEventType.COMPLETED_SHIFT_CLIENT: TrustRule(2, TrustSeverity.LOW),
        TrustEventType.COMPLETED_SHIFT_WORKER: TrustRule(2, TrustSeverity.LOW),
        TrustEventType.POSITIVE_RATING: TrustRule(5, TrustSeverity.LOW),
    }


def trust_score(impacts: Iterable[int]) -> int:
    """Clamp the base score plus every impact into [0, 100]."""
    total = BASE_TRUST_SCORE + sum(impacts)
    return max(MIN_TRUST_SCORE, min(MAX_TRUST_SCORE, total))


def trust_status(score: int) -> TrustStatus:
    if score >= 70:
        return TrustStatus.OK
    if score >= 50:
        return TrustStatus.WARNING
    if score >= 20:
        return TrustStatus.RESTRICTED
    return TrustStatus.BLOCKED
