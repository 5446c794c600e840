"""
Escrow calculator (``crew_kernel.domain.escrow``).

Responsibility
--------------
Pure computation of the money locked for a shift and the status machine
for an escrow hold.

Architecture position
---------------------
**Kernel domain layer** -- pure.  ZERO I/O.

Invariants enforced
-------------------
* ``total == worker_amount * worker_count + commission`` exactly.  The
  total is the literal sum of its components; only the commission is
  rounded (half-up, to the currency unit).
* Hold status only moves forward: pending -> held -> released | refunded.
  Released and refunded are terminal.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from crew_kernel.db.types import round_money, to_money
from crew_kernel.exceptions import (
    EscrowInconsistencyError,
    InvalidEscrowTransitionError,
)


class EscrowStatus(str, Enum):
    """Escrow hold lifecycle."""

    PENDING = "pending"
    HELD = "held"
    RELEASED = "released"
    REFUNDED = "refunded"


ESCROW_TRANSITIONS: dict[EscrowStatus, frozenset[EscrowStatus]] = {
    EscrowStatus.PENDING: frozenset({EscrowStatus.HELD}),
    EscrowStatus.HELD: frozenset({EscrowStatus.RELEASED, EscrowStatus.REFUNDED}),
    EscrowStatus.RELEASED: frozenset(),
    EscrowStatus.REFUNDED: frozenset(),
}

TERMINAL_ESCROW_STATUSES: frozenset[EscrowStatus] = frozenset({
    EscrowStatus.RELEASED,
    EscrowStatus.REFUNDED,
})


@dataclass(frozen=True)
class EscrowBreakdown:
    """Amounts for one shift's hold.  ``worker_amount`` is per worker."""

    worker_count: int
    worker_amount: Decimal
    commission: Decimal
    total: Decimal

    @property
    def workers_total(self) -> Decimal:
        return self.worker_amount * self.worker_count


def compute_escrow(
    worker_count: int,
    rate_per_worker: Decimal | int | str,
    commission_percent: Decimal | int | str,
    decimal_places: int = 0,
) -> EscrowBreakdown:
    """
    Size the escrow hold for a shift.

    commission = round_half_up(worker_count * rate * percent / 100)
    total      = worker_count * rate + commission

    Example:
        compute_escrow(2, 2500, 12) -> total 5600 (5000 + 600)
    """
    if worker_count < 1:
        raise ValueError(f"worker_count must be >= 1, got {worker_count}")
    rate = to_money(rate_per_worker)
    percent = to_money(commission_percent)
    if rate < 0 or percent < 0:
        raise ValueError("rate and commission percent must be non-negative")

    gross = rate * worker_count
    commission = round_money(gross * percent / Decimal(100), decimal_places)
    return EscrowBreakdown(
        worker_count=worker_count,
        worker_amount=rate,
        commission=commission,
        total=gross + commission,
    )


def verify_breakdown(
    shift_id: object,
    worker_count: int,
    worker_amount: Decimal,
    commission: Decimal,
    total: Decimal,
) -> None:
    """
    Raise EscrowInconsistencyError if the stored total drifted.

    Never corrects anything: a mismatch is a bug.
    """
    expected = worker_amount * worker_count + commission
    if expected != total:
        raise EscrowInconsistencyError(str(shift_id), str(expected), str(total))


def require_escrow_transition(
    hold_id: object,
    current: EscrowStatus,
    target: EscrowStatus,
) -> None:
    """Raise InvalidEscrowTransitionError unless the move is forward-legal."""
    if target not in ESCROW_TRANSITIONS[current]:
        raise InvalidEscrowTransitionError(str(hold_id), current.value, target.value)
