"""Collaborator protocols for money movement and user notification.

Implementations live outside the kernel (``crew_services.adapters``).  Both
are called only after the ledger transaction has committed; the payment
calls must be idempotent per hold so the dispatcher can retry them.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Protocol, runtime_checkable
from uuid import UUID


@runtime_checkable
class PaymentAdapter(Protocol):
    """Narrow interface to the payment provider."""

    def hold(self, hold_id: UUID, amount: Decimal) -> None:
        """Lock ``amount`` for the hold.  Idempotent per hold_id."""
        ...

    def release(self, hold_id: UUID) -> None:
        """Pay out a held amount.  Idempotent per hold_id."""
        ...

    def refund(self, hold_id: UUID) -> None:
        """Return a held amount (workers and commission) to the client."""
        ...


@runtime_checkable
class NotificationAdapter(Protocol):
    """Fire-and-forget user notifications."""

    def notify(self, user_id: UUID, type: str, payload: dict[str, Any]) -> None:
        ...
