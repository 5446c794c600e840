"""
EscrowService -- the only writer of escrow holds.

Responsibility:
    Sizes a shift's hold with the escrow calculator, then walks it through
    pending -> held -> released | refunded.  Each step returns the
    PaymentEffect the dispatcher runs after commit.

Architecture position:
    Kernel > Services.  Called by ShiftLifecycleService (hold, release) and
    DisputeResolver (refund).  Never talks to the payment provider.

Invariants enforced:
    - One hold per shift (UNIQUE(shift_id) in the schema).
    - Status moves forward only; released / refunded are terminal and a
      refunded hold can never be released.
    - The stored total is re-verified against its components before every
      money-moving step.  A mismatch is logged at ERROR and raised as
      EscrowInconsistencyError, never corrected.

Failure modes:
    - InvalidEscrowTransitionError on a backward or repeated move.
    - EscrowInconsistencyError on total drift.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy.orm import Session

from crew_kernel.db.types import round_money
from crew_kernel.domain.clock import Clock
from crew_kernel.domain.effects import PaymentAction, PaymentEffect
from crew_kernel.domain.escrow import (
    EscrowStatus,
    compute_escrow,
    require_escrow_transition,
    verify_breakdown,
)
from crew_kernel.domain.policy import SettlementPolicy
from crew_kernel.exceptions import EscrowInconsistencyError
from crew_kernel.logging_config import get_logger
from crew_kernel.models import EscrowHoldModel, ShiftModel
from crew_kernel.services.base import BaseService
from crew_kernel.services.ledger_store import LedgerStore

logger = get_logger("services.escrow")


class EscrowService(BaseService):
    """Creates and settles escrow holds."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: SettlementPolicy | None = None,
        store: LedgerStore | None = None,
    ):
        super().__init__(session, clock, policy)
        self.store = store or LedgerStore(session, self.clock, self.policy)

    def create_hold(self, shift: ShiftModel) -> EscrowHoldModel:
        """Size and persist a pending hold for a fully staffed shift."""
        breakdown = compute_escrow(
            shift.required_workers,
            shift.pay_rate,
            shift.commission_percent,
            self.policy.currency_decimal_places,
        )
        hold = EscrowHoldModel(
            shift_id=shift.id,
            worker_count=breakdown.worker_count,
            worker_amount=breakdown.worker_amount,
            commission=breakdown.commission,
            total=breakdown.total,
            status=EscrowStatus.PENDING.value,
            created_at=self.clock.now(),
        )
        self.session.add(hold)
        self.store.flush("EscrowHold", shift.id)

        logger.info(
            "escrow_hold_created",
            extra={
                "hold_id": str(hold.id),
                "worker_count": breakdown.worker_count,
                "worker_amount": str(breakdown.worker_amount),
                "commission": str(breakdown.commission),
                "total": str(breakdown.total),
            },
        )
        return hold

    def mark_held(self, hold: EscrowHoldModel) -> PaymentEffect:
        """pending -> held.  The provider lock runs after commit."""
        self._move(hold, EscrowStatus.HELD)
        hold.held_at = self.clock.now()
        self.store.flush("EscrowHold", hold.id)
        return PaymentEffect(PaymentAction.HOLD, hold.id, self.as_amount(hold.total))

    def release(self, hold: EscrowHoldModel) -> PaymentEffect:
        """held -> released: worker amounts paid out, commission kept."""
        self.verify(hold)
        self._move(hold, EscrowStatus.RELEASED)
        hold.released_at = self.clock.now()
        self.store.flush("EscrowHold", hold.id)
        return PaymentEffect(PaymentAction.RELEASE, hold.id, self.as_amount(hold.total))

    def refund(self, hold: EscrowHoldModel) -> PaymentEffect:
        """held -> refunded: worker amounts and commission go back to the client."""
        self.verify(hold)
        self._move(hold, EscrowStatus.REFUNDED)
        hold.refunded_at = self.clock.now()
        self.store.flush("EscrowHold", hold.id)
        return PaymentEffect(PaymentAction.REFUND, hold.id, self.as_amount(hold.total))

    def verify(self, hold: EscrowHoldModel) -> None:
        """Re-check ``total == worker_amount * worker_count + commission``."""
        try:
            verify_breakdown(
                hold.shift_id,
                hold.worker_count,
                hold.worker_amount,
                hold.commission,
                hold.total,
            )
        except EscrowInconsistencyError as exc:
            logger.error(
                "escrow_inconsistency_detected",
                extra={
                    "hold_id": str(hold.id),
                    "expected_total": exc.expected_total,
                    "actual_total": exc.actual_total,
                },
            )
            raise

    def _move(self, hold: EscrowHoldModel, target: EscrowStatus) -> None:
        current = EscrowStatus(hold.status)
        require_escrow_transition(hold.id, current, target)
        hold.status = target.value
        logger.info(
            "escrow_status_changed",
            extra={
                "hold_id": str(hold.id),
                "from_status": current.value,
                "to_status": target.value,
                "total": str(hold.total),
            },
        )

    def as_amount(self, value: Decimal) -> Decimal:
        # Numeric(38, 9) columns come back with nine places; amounts are exact
        # at the currency unit, so this never rounds
        return round_money(value, self.policy.currency_decimal_places)
