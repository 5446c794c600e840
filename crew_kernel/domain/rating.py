"""
Rating aggregation arithmetic (``crew_kernel.domain.rating``).

Pure functions for the running average.  The aggregate keeps an exact
integer score total alongside the count, so

    new_average = (old_average * old_count + value) / (old_count + 1)

is evaluated as ``(score_total + value) / (count + 1)``: O(1), no history
scan, and no drift from repeatedly rounded averages.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from crew_kernel.exceptions import RatingOutOfRangeError

RATING_MIN = 1
RATING_MAX = 5

# Stored averages carry four decimal places
AVERAGE_QUANTUM = Decimal("0.0001")


@dataclass(frozen=True)
class RatingTally:
    """Running aggregate for one user."""

    count: int = 0
    score_total: int = 0

    @property
    def average(self) -> Decimal:
        if self.count == 0:
            return Decimal("0").quantize(AVERAGE_QUANTUM)
        return (Decimal(self.score_total) / Decimal(self.count)).quantize(
            AVERAGE_QUANTUM, rounding=ROUND_HALF_UP
        )


def validate_rating_value(value: int) -> int:
    """Return ``value`` if it is an integer in [1, 5], else raise."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise RatingOutOfRangeError(value, RATING_MIN, RATING_MAX)
    if not RATING_MIN <= value <= RATING_MAX:
        raise RatingOutOfRangeError(value, RATING_MIN, RATING_MAX)
    return value


def apply_rating(tally: RatingTally, value: int) -> RatingTally:
    """Fold one new score into the running aggregate."""
    validate_rating_value(value)
    return RatingTally(count=tally.count + 1, score_total=tally.score_total + value)
