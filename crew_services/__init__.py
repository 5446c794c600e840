"""
crew_services -- orchestration and the adapter boundary.

SettlementOrchestrator owns transactions, retries and post-commit effect
dispatch; the adapters implement the kernel's payment and notification
ports.
"""

from crew_services.adapters import (
    AdapterError,
    LoggingNotificationAdapter,
    LoggingPaymentAdapter,
    RecordingNotificationAdapter,
    RecordingPaymentAdapter,
)
from crew_services.effect_dispatcher import EffectDispatcher
from crew_services.settlement_orchestrator import (
    CommandResult,
    KernelServices,
    SettlementOrchestrator,
    SweepFailure,
    SweepReport,
)

__all__ = [
    "AdapterError",
    "CommandResult",
    "EffectDispatcher",
    "KernelServices",
    "LoggingNotificationAdapter",
    "LoggingPaymentAdapter",
    "RecordingNotificationAdapter",
    "RecordingPaymentAdapter",
    "SettlementOrchestrator",
    "SweepFailure",
    "SweepReport",
]
