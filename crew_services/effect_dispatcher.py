"""
crew_services.effect_dispatcher -- Runs post-commit effects against adapters.

Responsibility:
    Takes the PaymentEffect / NotificationEffect values a kernel command
    returned and invokes the matching adapter call for each, in order.

Architecture position:
    Services -- adapter boundary.  Called by SettlementOrchestrator only
    after the ledger transaction has committed.

Invariants enforced:
    - An adapter failure never propagates: it is caught per effect, logged
      at WARNING and returned as a warning string.  The remaining effects
      still run.
    - The committed ledger change is authoritative; nothing here writes to
      the ledger.
"""

from __future__ import annotations

from collections.abc import Iterable

from crew_kernel.domain.effects import (
    Effect,
    NotificationEffect,
    PaymentAction,
    PaymentEffect,
)
from crew_kernel.domain.ports import NotificationAdapter, PaymentAdapter
from crew_kernel.logging_config import get_logger

logger = get_logger("services.effect_dispatcher")

_PAYMENT_WARNINGS = {
    PaymentAction.HOLD: "escrow recorded, provider hold pending retry",
    PaymentAction.RELEASE: "payout recorded, transfer pending retry",
    PaymentAction.REFUND: "refund recorded, transfer pending retry",
}


class EffectDispatcher:
    """Best-effort executor for post-commit effects."""

    def __init__(self, payments: PaymentAdapter, notifications: NotificationAdapter) -> None:
        self.payments = payments
        self.notifications = notifications

    def dispatch(self, effects: Iterable[Effect]) -> tuple[str, ...]:
        """
        Run every effect.

        Returns:
            One human-readable warning per failed effect, empty when all
            adapter calls succeeded.
        """
        warnings: list[str] = []
        for effect in effects:
            try:
                if isinstance(effect, PaymentEffect):
                    self._pay(effect)
                else:
                    self._notify(effect)
            except Exception as exc:
                logger.warning(
                    "effect_dispatch_failed",
                    extra={
                        "effect": effect.describe(),
                        "error_type": type(exc).__name__,
                        "error": str(exc),
                    },
                )
                warnings.append(self._warning_for(effect))
            else:
                logger.debug("effect_dispatched", extra={"effect": effect.describe()})
        return tuple(warnings)

    def _pay(self, effect: PaymentEffect) -> None:
        if effect.action is PaymentAction.HOLD:
            self.payments.hold(effect.hold_id, effect.amount)
        elif effect.action is PaymentAction.RELEASE:
            self.payments.release(effect.hold_id)
        else:
            self.payments.refund(effect.hold_id)

    def _notify(self, effect: NotificationEffect) -> None:
        self.notifications.notify(effect.user_id, effect.type.value, effect.payload)

    @staticmethod
    def _warning_for(effect: Effect) -> str:
        if isinstance(effect, PaymentEffect):
            return f"{_PAYMENT_WARNINGS[effect.action]} ({effect.hold_id})"
        return f"notification {effect.type.value} to {effect.user_id} not delivered"
