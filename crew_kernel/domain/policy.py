"""
Settlement policy (``crew_kernel.domain.policy``).

The tunable numbers of the settlement workflow as one frozen value.  The
kernel only consumes it; ``crew_config`` builds it from YAML.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal

from crew_kernel.domain.rating import RATING_MAX, RATING_MIN
from crew_kernel.domain.trust import TrustEventType, TrustRule, default_trust_rules


@dataclass(frozen=True)
class SettlementPolicy:
    """Numeric rules for shifts, escrow, ratings, disputes and trust events."""

    currency_decimal_places: int = 0
    default_commission_percent: Decimal = Decimal("12")
    minimum_rate: Decimal = Decimal("1000")
    check_in_grace: timedelta = timedelta(minutes=30)
    worker_confirm_grace: timedelta = timedelta(hours=24)
    rating_grace: timedelta = timedelta(hours=72)
    appeal_window: timedelta = timedelta(days=14)
    min_dispute_description_length: int = 20
    max_resolution_length: int = 1000
    max_command_attempts: int = 3
    late_arrival_after: timedelta = timedelta(minutes=30)
    positive_rating_threshold: int = 4
    trust_window: timedelta = timedelta(days=7)
    trust_rules: dict[TrustEventType, TrustRule] = field(
        default_factory=default_trust_rules, hash=False
    )

    def __post_init__(self) -> None:
        if self.currency_decimal_places < 0:
            raise ValueError("currency_decimal_places must be >= 0")
        if not Decimal(0) <= self.default_commission_percent <= Decimal(100):
            raise ValueError("default_commission_percent must be within [0, 100]")
        if self.minimum_rate < 0:
            raise ValueError("minimum_rate must be >= 0")
        if self.max_command_attempts < 1:
            raise ValueError("max_command_attempts must be >= 1")
        if not RATING_MIN <= self.positive_rating_threshold <= RATING_MAX:
            raise ValueError(
                f"positive_rating_threshold must be within [{RATING_MIN}, {RATING_MAX}]"
            )
        missing = [t.value for t in TrustEventType if t not in self.trust_rules]
        if missing:
            raise ValueError(f"trust_rules missing event types: {', '.join(missing)}")

    def trust_rule(self, event_type: TrustEventType) -> TrustRule:
        return self.trust_rules[event_type]
