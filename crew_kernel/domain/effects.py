"""
Post-commit side effects (``crew_kernel.domain.effects``).

Kernel services never call the payment provider or the notification
transport.  They return these values next to the ledger change, and the
effect dispatcher in ``crew_services`` runs them once the transaction has
committed.  A failed effect never touches the ledger.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Generic, TypeVar
from uuid import UUID


class PaymentAction(str, Enum):
    HOLD = "hold"
    RELEASE = "release"
    REFUND = "refund"


class NotificationType(str, Enum):
    """Notification kinds emitted by the settlement workflow."""

    APPLICATION_APPROVED = "application_approved"
    ESCROW_HELD = "escrow_held"
    WORKER_CHECKED_IN = "worker_checked_in"
    WORKER_CHECKED_OUT = "worker_checked_out"
    SHIFT_COMPLETED_BY_CLIENT = "shift_completed_by_client"
    COMPLETION_CONFIRMED = "completion_confirmed"
    RATING_REQUESTED = "rating_requested"
    RATING_RECEIVED = "rating_received"
    PAYMENT_RELEASED = "payment_released"
    PAYMENT_REFUNDED = "payment_refunded"
    SHIFT_CANCELLED = "shift_cancelled"
    DISPUTE_OPENED = "dispute_opened"
    DISPUTE_IN_REVIEW = "dispute_in_review"
    DISPUTE_CLOSED = "dispute_closed"
    ACCOUNT_BANNED = "account_banned"


@dataclass(frozen=True)
class PaymentEffect:
    """Ask the payment provider to move money for a hold."""

    action: PaymentAction
    hold_id: UUID
    amount: Decimal | None = None

    def describe(self) -> str:
        return f"payment.{self.action.value}:{self.hold_id}"


@dataclass(frozen=True)
class NotificationEffect:
    """Tell a user something happened."""

    user_id: UUID
    type: NotificationType
    payload: dict[str, Any] = field(default_factory=dict)

    def describe(self) -> str:
        return f"notify.{self.type.value}:{self.user_id}"


Effect = PaymentEffect | NotificationEffect

T = TypeVar("T")


@dataclass(frozen=True)
class LedgerChange(Generic[T]):
    """
    What a kernel command returns: the new ledger snapshot plus the effects
    to run once the caller has committed.
    """

    value: T
    effects: tuple[Effect, ...] = ()
