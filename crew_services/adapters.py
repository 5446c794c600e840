"""
crew_services.adapters -- Payment and notification adapter implementations.

Responsibility:
    Concrete ``PaymentAdapter`` / ``NotificationAdapter`` implementations
    the orchestrator can be wired with.  The logging adapters are the
    default for local runs and the scheduler script (no real payment
    rails); the recording adapters keep every call in memory and can be
    told to fail, for tests and dry runs.

Architecture position:
    Services -- adapter boundary.  Implements the protocols declared in
    ``crew_kernel.domain.ports``.  Never touches the ledger.

Invariants enforced:
    - Payment calls are idempotent per (action, hold_id): a repeated call
      is a no-op, so the dispatcher may retry them safely.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any
from uuid import UUID

from crew_kernel.logging_config import get_logger

logger = get_logger("adapters")


class AdapterError(Exception):
    """Raised by an adapter when the external call fails."""


class LoggingPaymentAdapter:
    """Records money movement in the log instead of calling a provider."""

    def __init__(self) -> None:
        self._done: set[tuple[str, UUID]] = set()

    def hold(self, hold_id: UUID, amount: Decimal) -> None:
        if self._once("hold", hold_id):
            logger.info("payment_hold", extra={"hold_id": str(hold_id), "amount": str(amount)})

    def release(self, hold_id: UUID) -> None:
        if self._once("release", hold_id):
            logger.info("payment_release", extra={"hold_id": str(hold_id)})

    def refund(self, hold_id: UUID) -> None:
        if self._once("refund", hold_id):
            logger.info("payment_refund", extra={"hold_id": str(hold_id)})

    def _once(self, action: str, hold_id: UUID) -> bool:
        key = (action, hold_id)
        if key in self._done:
            return False
        self._done.add(key)
        return True


class LoggingNotificationAdapter:
    """Writes each notification to the log."""

    def notify(self, user_id: UUID, type: str, payload: dict[str, Any]) -> None:
        logger.info(
            "notification_sent",
            extra={"user_id": str(user_id), "notification_type": type, "payload": payload},
        )


@dataclass(frozen=True)
class PaymentCall:
    action: str
    hold_id: UUID
    amount: Decimal | None = None


@dataclass(frozen=True)
class NotificationCall:
    user_id: UUID
    type: str
    payload: dict[str, Any] = field(default_factory=dict)


class RecordingPaymentAdapter:
    """
    Keeps every payment call in ``calls``.

    ``fail_on`` names the actions ("hold", "release", "refund") that raise
    AdapterError instead of being recorded.
    """

    def __init__(self, fail_on: set[str] | None = None) -> None:
        self.fail_on = set(fail_on or ())
        self.calls: list[PaymentCall] = []

    def hold(self, hold_id: UUID, amount: Decimal) -> None:
        self._record(PaymentCall("hold", hold_id, amount))

    def release(self, hold_id: UUID) -> None:
        self._record(PaymentCall("release", hold_id))

    def refund(self, hold_id: UUID) -> None:
        self._record(PaymentCall("refund", hold_id))

    def actions(self) -> list[str]:
        return [call.action for call in self.calls]

    def _record(self, call: PaymentCall) -> None:
        if call.action in self.fail_on:
            raise AdapterError(f"payment provider unavailable for {call.action}")
        if any(c.action == call.action and c.hold_id == call.hold_id for c in self.calls):
            return
        self.calls.append(call)


class RecordingNotificationAdapter:
    """Keeps every notification in ``calls``; ``fail=True`` makes every send raise."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[NotificationCall] = []

    def notify(self, user_id: UUID, type: str, payload: dict[str, Any]) -> None:
        if self.fail:
            raise AdapterError("notification transport unavailable")
        self.calls.append(NotificationCall(user_id, type, dict(payload)))

    def types_for(self, user_id: UUID) -> list[str]:
        return [call.type for call in self.calls if call.user_id == user_id]
